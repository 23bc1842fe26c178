from lenswatch.ai.analysis_service import AnalysisService, markdown_to_html
from lenswatch.ai.client import (
    AIResult,
    BaseAIClient,
    GeminiAIClient,
    HTTPAIClient,
    SimulatedAIClient,
    build_ai_client,
)
from lenswatch.ai.credentials import CredentialStore

__all__ = [
    "AIResult",
    "AnalysisService",
    "BaseAIClient",
    "CredentialStore",
    "GeminiAIClient",
    "HTTPAIClient",
    "SimulatedAIClient",
    "build_ai_client",
    "markdown_to_html",
]
