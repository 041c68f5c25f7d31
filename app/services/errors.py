from __future__ import annotations


class EngineError(RuntimeError):
    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


class StoreUnavailable(EngineError):
    """The backing store could not be reached. Safe to retry."""

    def __init__(self, message: str = "Progress store is unavailable. Please try again."):
        super().__init__(message, status_code=503)


class ProfileNotFound(EngineError):
    def __init__(self, user_id: str):
        super().__init__(f"No stats profile found for user '{user_id}'.", status_code=404)
        self.user_id = user_id


class UniquenessViolation(EngineError):
    """A (user, badge) award row already exists."""

    def __init__(self, user_id: str, badge_id: str):
        super().__init__(f"Badge '{badge_id}' already awarded to user '{user_id}'.", status_code=409)
        self.user_id = user_id
        self.badge_id = badge_id


class PartialWriteFailure(EngineError):
    def __init__(self, message: str):
        super().__init__(message, status_code=500)


class AssessmentIncomplete(EngineError):
    def __init__(self, missing_stages: list[str]):
        super().__init__(
            "Complete all assessment stages first: " + ", ".join(missing_stages),
            status_code=409,
        )
        self.missing_stages = list(missing_stages)


class AnalysisUnavailable(EngineError):
    def __init__(self, message: str, *, code: str = "llm_unavailable"):
        super().__init__(message, status_code=503)
        self.code = code
