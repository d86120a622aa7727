"""Exception hierarchy for infrastructure failures.

Operations never let these escape: the action layer converts them into
ActionFailure results. The global handlers in main.py only see them when a
route or dependency raises outside an action.
"""

from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    AUTHENTICATION = "authentication"
    DATABASE = "database"
    INTERNAL = "internal"


class TaskboardError(Exception):
    """Base exception for all service errors"""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.http_status = http_status

    def to_response(self) -> dict:
        """Client-facing error envelope"""
        return {
            "success": False,
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
            },
        }


class AuthenticationError(TaskboardError):
    """Bearer token could not be verified"""

    def __init__(self, reason: str):
        super().__init__(
            "Invalid authentication credentials",
            "AUTHENTICATION_FAILED", ErrorCategory.AUTHENTICATION, 401,
        )
        self.reason = reason


class StoreError(TaskboardError):
    """A store operation failed; detail is kept for logs only"""

    def __init__(self, operation: str, detail: Optional[str] = None):
        super().__init__(
            f"Store {operation} failed",
            "STORE_ERROR", ErrorCategory.DATABASE, 503,
        )
        self.operation = operation
        self.detail = detail
