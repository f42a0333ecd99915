"""
Subject identity as supplied by the authentication collaborator.
"""
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SubjectIdentity:
    """
    A verified user id and/or email.

    ``key`` is the normalized string stored on sessions and records and used
    by the one-open-session-per-test constraint: the user id when known,
    otherwise the lower-cased email.
    """

    user_id: Optional[str] = None
    email: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.user_id and not self.email:
            raise ValueError("SubjectIdentity requires a user_id or an email")

    @property
    def key(self) -> str:
        if self.user_id:
            return f"user:{self.user_id}"
        return f"email:{self.email.strip().lower()}"  # type: ignore[union-attr]

    def __str__(self) -> str:
        return self.key
