# ============================================================================
# Custom Exceptions
# ============================================================================
from typing import Optional

class QuizAppException(Exception):
    """Base exception for the trivia challenge service"""
    def __init__(
        self,
        detail: str,
        status_code: int = 400,
        error_code: Optional[str] = None
    ):
        self.detail = detail
        self.status_code = status_code
        self.error_code = error_code or "QUIZ_ERROR"
        super().__init__(self.detail)

# ==================== Question source ====================

class QuestionSourceError(QuizAppException):
    """Raised when questions could not be acquired"""
    retryable = False

class InsufficientInventory(QuestionSourceError):
    def __init__(self):
        super().__init__(
            detail="Not enough questions available for the selected options. "
                   "Try a different category or difficulty.",
            status_code=422,
            error_code="INSUFFICIENT_INVENTORY"
        )

class InvalidSelection(QuestionSourceError):
    def __init__(self):
        super().__init__(
            detail="Invalid category or difficulty selected.",
            status_code=400,
            error_code="INVALID_SELECTION"
        )

class RateLimited(QuestionSourceError):
    retryable = True

    def __init__(self, message: str = "Question provider is rate limiting requests"):
        super().__init__(
            detail=message,
            status_code=429,
            error_code="RATE_LIMITED"
        )

class UpstreamError(QuestionSourceError):
    """Transient upstream failure (bad status, bad envelope, transport error)"""
    retryable = True

    def __init__(self, message: str):
        super().__init__(
            detail=message,
            status_code=502,
            error_code="UPSTREAM_ERROR"
        )

class QuestionSourceUnavailable(QuestionSourceError):
    retryable = True

    def __init__(self, attempts: int, cause: Optional[Exception] = None):
        super().__init__(
            detail=f"Failed to load quiz questions after {attempts} attempts. Please try again.",
            status_code=503,
            error_code="QUESTIONS_UNAVAILABLE"
        )
        self.attempts = attempts
        self.cause = cause

# ==================== Storage ====================

class StorageError(QuizAppException):
    def __init__(self, message: str):
        super().__init__(
            detail=message,
            status_code=503,
            error_code="STORAGE_ERROR"
        )

# ==================== Quiz session ====================

class QuizNotActive(QuizAppException):
    def __init__(self, message: str = "No quiz in progress"):
        super().__init__(
            detail=message,
            status_code=409,
            error_code="QUIZ_NOT_ACTIVE"
        )

# ==================== Identities ====================

class IdentityNotFound(QuizAppException):
    def __init__(self, username: str):
        super().__init__(
            detail=f"User not found: {username}",
            status_code=404,
            error_code="USER_NOT_FOUND"
        )

class IdentityAlreadyExists(QuizAppException):
    def __init__(self, username: str):
        super().__init__(
            detail=f"Username already exists: {username}",
            status_code=409,
            error_code="USER_EXISTS"
        )

class QuizInProgress(QuizAppException):
    def __init__(self):
        super().__init__(
            detail="A quiz is already in progress. Resume it or abandon it first.",
            status_code=409,
            error_code="QUIZ_IN_PROGRESS"
        )
