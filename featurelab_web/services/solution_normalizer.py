from __future__ import annotations

from typing import List, Optional

from featurelab_web.domain.records import (
    ApproachRisk,
    EvaluationEntry,
    SolutionApproach,
    SolutionComparison,
    SolutionRecord,
)
from featurelab_web.domain.schemas import SolutionSchema
from featurelab_web.services.response_normalization import ResponseNormalizer

IMPACT_RANK = {"High": 3, "Potentially High": 2, "Medium": 1, "Low": 0}


class SolutionNormalizer(ResponseNormalizer[SolutionRecord]):
    """
    Reader for solution_architect responses. Upstream field names vary
    (`pros` or `key_benefits`, `prioritization_matrix`, ...); records always
    use the canonical ones.
    """

    record_type = SolutionRecord
    schema = SolutionSchema
    label = "Solution architect data"

    # -----------------------------
    # Accessors
    # -----------------------------
    @property
    def problem_statement(self) -> str:
        return self.record.problem_statement

    @property
    def approaches(self) -> List[SolutionApproach]:
        return list(self.record.solution_analysis)

    @property
    def approach_names(self) -> List[str]:
        return [a.approach_name for a in self.record.solution_analysis]

    def approach(self, name: str) -> Optional[SolutionApproach]:
        return next((a for a in self.record.solution_analysis if a.approach_name == name), None)

    def first_approach(self) -> Optional[SolutionApproach]:
        approaches = self.record.solution_analysis
        return approaches[0] if approaches else None

    @property
    def comparison(self) -> SolutionComparison:
        return self.record.comparison

    @property
    def recommendation(self) -> str:
        return self.record.comparison.recommendation

    def evaluation_table(self) -> List[EvaluationEntry]:
        return list(self.record.comparison.evaluation_table)

    def approach_evaluation(self, name: str) -> Optional[EvaluationEntry]:
        return next((e for e in self.record.comparison.evaluation_table if e.approach_name == name), None)

    def highest_impact_approach(self) -> Optional[EvaluationEntry]:
        candidates = [
            e for e in self.record.comparison.evaluation_table
            if e.impact_score in ("High", "Potentially High")
        ]
        candidates.sort(key=lambda e: -IMPACT_RANK.get(e.impact_score, 0))
        return candidates[0] if candidates else None

    def lowest_effort_approach(self) -> Optional[EvaluationEntry]:
        return next((e for e in self.record.comparison.evaluation_table if e.effort_score == "Low"), None)

    def highest_confidence_approach(self) -> Optional[EvaluationEntry]:
        return next((e for e in self.record.comparison.evaluation_table if e.confidence_score == "High"), None)

    def approach_benefits(self, name: str) -> List[str]:
        a = self.approach(name)
        return list(a.benefits) if a else []

    def approach_risks(self, name: str) -> List[ApproachRisk]:
        a = self.approach(name)
        return list(a.risks) if a else []
