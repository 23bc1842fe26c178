from typing import Optional


class LensWatchError(Exception):
    """Base exception for Lenswatch errors."""
    pass

class ConfigError(LensWatchError):
    """Configuration loading specific errors."""
    pass

class ValidationError(LensWatchError):
    """
    Missing mandatory field on create/import, or an import payload that is not a list.
    `errors` holds one human readable entry per offending record/field.
    """

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        super().__init__(message)
        self.errors = errors or []

class PersistenceError(LensWatchError):
    """Backend read/write failure (network, permission, quota) or data unavailable."""
    pass

class NotFoundError(LensWatchError):
    """Delete targeting an intervention id that is not in the store."""

    def __init__(self, intervention_id: str):
        super().__init__(f"Intervention not found: {intervention_id}")
        self.intervention_id = intervention_id


class AnalysisServiceError(LensWatchError):
    """External analysis call failed."""
    pass

class MissingCredentialError(AnalysisServiceError):
    pass

class AnalysisTimeoutError(AnalysisServiceError):
    pass

class AnalysisStatusError(AnalysisServiceError):
    def __init__(self, status_code: int, detail: str = ""):
        message = f"AI provider error: {status_code}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.status_code = status_code

class AnalysisResponseError(AnalysisServiceError):
    """Provider answered 2xx but the body could not be read as a completion."""
    pass

class AnalysisCancelledError(AnalysisServiceError):
    pass
