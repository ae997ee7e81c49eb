from .analysis_normalizer import AnalysisNormalizer
from .assessment_normalizer import AssessmentNormalizer
from .critique_normalizer import CritiqueNormalizer
from .inference_client import InferenceApiClient
from .pipeline_coordinator import PipelineCoordinator
from .request_orchestrator import RequestOrchestrator
from .response_normalization import ResponseNormalizer
from .solution_normalizer import SolutionNormalizer

__all__ = [
    "AnalysisNormalizer",
    "AssessmentNormalizer",
    "CritiqueNormalizer",
    "InferenceApiClient",
    "PipelineCoordinator",
    "RequestOrchestrator",
    "ResponseNormalizer",
    "SolutionNormalizer",
]
