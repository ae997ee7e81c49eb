from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from featurelab_web.domain.models import APIResult
from featurelab_web.services.request_orchestrator import RequestOrchestrator

logger = logging.getLogger(__name__)


class InferenceApiClient:
    """Binds the remote service's endpoints to a RequestOrchestrator."""

    def __init__(self, orchestrator: RequestOrchestrator):
        self.orchestrator = orchestrator

    def _post(self, endpoint: str, payload: Dict[str, Any]) -> APIResult[Any]:
        logger.info("%s called", endpoint)
        result = self.orchestrator.issue(endpoint, payload)
        if result.success:
            logger.info("%s completed", endpoint)
        else:
            logger.error("%s failed: %s", endpoint, result.error)
        return result

    def idea_to_analysis(self, idea: str, context: str) -> APIResult[Any]:
        return self._post("idea_to_analysis", {"idea": idea, "context": context})

    def product_critique(self, analysis_board: Dict[str, Any]) -> APIResult[Any]:
        return self._post("product_critique", {"analysis_board": analysis_board})

    def assessment_center(self, analysis_board: Dict[str, Any], product_critique: Dict[str, Any]) -> APIResult[Any]:
        return self._post(
            "assessment_center",
            {"analysis_board": analysis_board, "product_critique": product_critique},
        )

    def solution_architect(self, analysis_board: Dict[str, Any]) -> APIResult[Any]:
        return self._post("solution_architect", {"analysis_board": analysis_board})

    def solution_to_ui(self, problem_statement: str, selected_approach: Optional[Dict[str, Any]] = None) -> APIResult[Any]:
        payload: Dict[str, Any] = {"problem_statement": problem_statement}
        if selected_approach is not None:
            payload["selected_approach"] = selected_approach
        return self._post("solution_to_ui", payload)

    def solution_to_ui_from_prompt(self, prompt: str) -> APIResult[Any]:
        return self.solution_to_ui(prompt)

    def update_analysis_field(
        self, analysis_board: Dict[str, Any], field_name: str, updated_field: Dict[str, Any]
    ) -> APIResult[Any]:
        """Rewrite one board field; `updated_field` usually carries an `instruction`."""
        return self._post(
            "field-edit",
            {"analysis_board": analysis_board, "field_name": field_name, "updated_field": updated_field},
        )

    def mobile_prototype(self, prototype_type: str, variant: str) -> APIResult[Any]:
        # the endpoint expects its input as a JSON-encoded string
        input_data = json.dumps({"type": prototype_type, "variant": variant, "features": []})
        return self._post("mobile_prototype", {"inputData": input_data})

    def health_check(self) -> APIResult[Any]:
        return self.orchestrator.get("health")

    def sample_prompts(self) -> APIResult[Any]:
        return self.orchestrator.get("sample-prompts")
