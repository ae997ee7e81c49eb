from __future__ import annotations

from typing import List, Optional, Tuple

from featurelab_web.domain.models import AssessmentAnalysis
from featurelab_web.domain.records import ASSESSMENT_CATEGORIES, AssessmentRecord
from featurelab_web.domain.schemas import AssessmentSchema
from featurelab_web.services.response_normalization import ResponseNormalizer

IMPROVEMENT_THRESHOLD = 60

GRADE_BREAKPOINTS = (
    (90, "A+"),
    (85, "A"),
    (80, "A-"),
    (75, "B+"),
    (70, "B"),
    (65, "B-"),
    (60, "C+"),
    (55, "C"),
    (50, "C-"),
    (45, "D+"),
    (40, "D"),
    (35, "D-"),
)


def grade_for(score: float) -> str:
    for floor, grade in GRADE_BREAKPOINTS:
        if score >= floor:
            return grade
    return "F"


def category_label(category: str) -> str:
    return category.replace("_", " ").title()


class AssessmentNormalizer(ResponseNormalizer[AssessmentRecord]):
    """
    Scores four fixed categories. Rankings and grades are pure functions of
    the loaded record; ties keep the fixed category order.
    """

    record_type = AssessmentRecord
    schema = AssessmentSchema
    label = "Assessment"

    def _ordered_scores(self) -> List[Tuple[str, float]]:
        scores = self.record.scores
        return [(c, scores.get(c, 0)) for c in ASSESSMENT_CATEGORIES]

    @property
    def overall_score(self) -> float:
        return self.record.overall_score

    @property
    def total_score(self) -> float:
        return sum(s for _, s in self._ordered_scores())

    @property
    def average_score(self) -> float:
        return self.total_score / len(ASSESSMENT_CATEGORIES)

    @property
    def highest_score(self) -> float:
        return max(s for _, s in self._ordered_scores())

    @property
    def lowest_score(self) -> float:
        return min(s for _, s in self._ordered_scores())

    @property
    def grade(self) -> str:
        return grade_for(self.average_score)

    def score_ranking(self) -> List[Tuple[str, float]]:
        return sorted(self._ordered_scores(), key=lambda cs: -cs[1])

    def categories_needing_improvement(self) -> List[Tuple[str, float]]:
        weak = [cs for cs in self._ordered_scores() if cs[1] < IMPROVEMENT_THRESHOLD]
        return sorted(weak, key=lambda cs: cs[1])

    def best_category(self) -> str:
        return self.score_ranking()[0][0]

    def worst_category(self) -> str:
        return self.score_ranking()[-1][0]

    def rationale_for(self, category: str) -> Optional[str]:
        return self.record.rationale.get(category)

    def analysis(self) -> AssessmentAnalysis:
        return AssessmentAnalysis(
            total_score=self.total_score,
            average_score=self.average_score,
            highest_score=self.highest_score,
            lowest_score=self.lowest_score,
            score_ranking=self.score_ranking(),
            grade=self.grade,
        )

    def export_as_text(self) -> str:
        r = self.record
        lines = [
            f"Overall score: {r.overall_score}",
            f"Average score: {self.average_score:.1f} ({self.grade})",
            "",
            "Scores:",
        ]
        for category, score in self.score_ranking():
            lines.append(f"- {category_label(category)}: {score}")
            if r.rationale.get(category):
                lines.append(f"  {r.rationale[category]}")
        weak = self.categories_needing_improvement()
        if weak:
            lines.append("")
            lines.append("Needs improvement: " + ", ".join(category_label(c) for c, _ in weak))
        return "\n".join(lines)
