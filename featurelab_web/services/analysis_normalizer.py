from __future__ import annotations

from typing import List

from featurelab_web.domain.models import AnalysisSummary
from featurelab_web.domain.records import (
    AnalysisRecord,
    AnalysisScope,
    SuccessMetric,
    UserInsight,
    UserProblemGoal,
)
from featurelab_web.domain.schemas import AnalysisBoardSchema
from featurelab_web.services.response_normalization import ResponseNormalizer


class AnalysisNormalizer(ResponseNormalizer[AnalysisRecord]):
    """Reader for the `analysis_board` returned by idea_to_analysis."""

    record_type = AnalysisRecord
    schema = AnalysisBoardSchema
    label = "Analysis"

    # -----------------------------
    # Accessors
    # -----------------------------
    @property
    def product_goal(self) -> str:
        return self.record.product_goal

    @property
    def business_goal(self) -> str:
        return self.record.business_goal

    @property
    def user_problem_goal(self) -> UserProblemGoal:
        return self.record.user_problem_goal

    @property
    def target_segments(self) -> List[str]:
        return list(self.record.target_segments)

    @property
    def user_insights(self) -> List[UserInsight]:
        return list(self.record.user_insights_data)

    @property
    def scope(self) -> AnalysisScope:
        return self.record.scope

    @property
    def success_metrics(self) -> List[SuccessMetric]:
        return list(self.record.success_metrics)

    def summary(self) -> AnalysisSummary:
        r = self.record
        return AnalysisSummary(
            target_segments_count=len(r.target_segments),
            user_insights_count=len(r.user_insights_data),
            in_scope_count=len(r.scope.in_scope),
            out_scope_count=len(r.scope.out_scope),
            constraints_count=len(r.scope.constraints),
            success_metrics_count=len(r.success_metrics),
        )

    def search_insights(self, keyword: str) -> List[UserInsight]:
        needle = (keyword or "").lower()
        return [
            i for i in self.record.user_insights_data
            if needle in i.insight.lower() or needle in i.evidence.lower()
        ]

    def metrics_by_type(self, metric_type: str) -> List[SuccessMetric]:
        return [m for m in self.record.success_metrics if m.type == metric_type]

    def metrics_with_targets(self) -> List[SuccessMetric]:
        return [m for m in self.record.success_metrics if m.target.strip()]
