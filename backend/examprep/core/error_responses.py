"""
Standardized user-facing error messages.

Every message the engine returns to a client is defined here so wording
stays consistent between the lifecycle controller, the record endpoints
and the authentication dependency.

Error Message Format Guidelines:
- Use sentence case (capitalize first letter only)
- End with a period for complete sentences
- Include relevant IDs in parentheses when helpful for debugging: "(ID: 123)"

Usage:
    from examprep.core.error_responses import ErrorMessages
    from examprep.core.exceptions import NotFoundError

    raise NotFoundError(ErrorMessages.test_not_found(test_id))
"""

from typing import NoReturn, Optional

from fastapi import HTTPException, status


class ErrorMessages:
    """Centralized error message constants and templates.

    Naming Convention:
    - Constants: SCREAMING_SNAKE_CASE for static messages
    - Methods: snake_case for templates that accept parameters
    """

    # ==========================================================================
    # Authentication Errors (401)
    # ==========================================================================
    INVALID_TOKEN = "Invalid authentication token."
    INVALID_TOKEN_TYPE = "Invalid token type."
    INVALID_TOKEN_PAYLOAD = "Authentication token carries no user id or email."

    # ==========================================================================
    # Authorization Errors (403)
    # ==========================================================================
    SESSION_ACCESS_DENIED = "Not authorized to access this test session."
    RECORD_ACCESS_DENIED = "Not authorized to access this performance record."

    # ==========================================================================
    # Not Found Errors (404)
    # ==========================================================================
    SESSION_NOT_FOUND = "Test session not found."
    RECORD_NOT_FOUND = "Performance record not found."

    # ==========================================================================
    # Conflict Errors (409)
    # ==========================================================================
    SESSION_ALREADY_IN_PROGRESS = (
        "Another attempt at this test was started at the same moment. "
        "Please retry to resume it."
    )
    SESSION_ALREADY_SUBMITTED = "This test session has already been submitted."

    # ==========================================================================
    # Template Methods for Dynamic Messages
    # ==========================================================================
    @staticmethod
    def test_not_found(test_id: int) -> str:
        """Message for an unknown test id."""
        return f"Test not found (ID: {test_id})."

    @staticmethod
    def test_inactive(test_id: int) -> str:
        """Message for a test that has been withdrawn from attempts."""
        return f"This test is no longer available (ID: {test_id})."

    @staticmethod
    def session_already_closed(status_value: str) -> str:
        """Message for submit/end against a session that is no longer open."""
        return (
            f"Test session is already closed (status: {status_value}). "
            "Start a new attempt to try again."
        )


def raise_unauthorized(
    detail: str,
    headers: Optional[dict] = None,
) -> NoReturn:
    """
    Raise a 401 Unauthorized HTTPException.

    Args:
        detail: User-facing error message
        headers: Optional headers; defaults to a Bearer challenge
    """
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers=headers or {"WWW-Authenticate": "Bearer"},
    )
