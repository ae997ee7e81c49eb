from __future__ import annotations

from typing import List

from featurelab_web.domain.models import CritiqueAnalysis
from featurelab_web.domain.records import CritiquePoint, CritiqueRecord
from featurelab_web.domain.schemas import CritiqueSchema
from featurelab_web.services.response_normalization import ResponseNormalizer

POINT_FIELDS = ("category", "critique", "challenge_question")

# The service answers in Vietnamese or English.
HIGH_PRIORITY_KEYWORDS = ("thiếu", "không có", "lỗ hổng", "vấn đề", "rủi ro", "critical")


class CritiqueNormalizer(ResponseNormalizer[CritiqueRecord]):
    record_type = CritiqueRecord
    schema = CritiqueSchema
    label = "Critique"

    @property
    def overall_summary(self) -> str:
        return self.record.overall_summary

    @property
    def critique_points(self) -> List[CritiquePoint]:
        return list(self.record.critique_points)

    def points_by_category(self, category: str) -> List[CritiquePoint]:
        needle = (category or "").lower()
        return [p for p in self.record.critique_points if needle in p.category.lower()]

    def categories(self) -> List[str]:
        seen: List[str] = []
        for p in self.record.critique_points:
            if p.category and p.category not in seen:
                seen.append(p.category)
        return seen

    def search_points(self, keyword: str) -> List[CritiquePoint]:
        needle = (keyword or "").lower()
        return [
            p for p in self.record.critique_points
            if any(needle in getattr(p, name).lower() for name in POINT_FIELDS)
        ]

    def high_priority_points(self) -> List[CritiquePoint]:
        return [
            p for p in self.record.critique_points
            if any(k in p.critique.lower() for k in HIGH_PRIORITY_KEYWORDS)
        ]

    def analysis(self) -> CritiqueAnalysis:
        r = self.record
        return CritiqueAnalysis(
            total_points=len(r.critique_points),
            categories=self.categories(),
            summary_length=len(r.overall_summary),
            has_challenge_questions=any(p.challenge_question.strip() for p in r.critique_points),
        )

    def export_as_text(self) -> str:
        r = self.record
        lines = ["Overall summary:", r.overall_summary, "", "Critique points:"]
        for i, p in enumerate(r.critique_points, start=1):
            lines.append(f"{i}. [{p.category}] {p.critique}")
            if p.challenge_question:
                lines.append(f"   Challenge: {p.challenge_question}")
        return "\n".join(lines)
