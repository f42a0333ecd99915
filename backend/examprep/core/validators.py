"""
Input validation and sanitization utilities.
"""

import html
import re
from typing import Any, Optional

from examprep.core.test_definitions import OPTION_KEYS


class StringSanitizer:
    """
    String sanitization for free text stored on performance records.
    """

    # Control characters to strip (except newlines, tabs, carriage returns)
    CONTROL_CHARS_PATTERN = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")

    COMMENT_MAX_LENGTH = 1000

    @classmethod
    def sanitize_comment(cls, value: str) -> str:
        """
        Strip control characters and surrounding whitespace, then escape HTML.

        Length is checked by the schema before sanitizing, so escaping may
        legitimately grow the stored text past COMMENT_MAX_LENGTH.
        """
        value = cls.CONTROL_CHARS_PATTERN.sub("", value)
        value = value.strip()
        return html.escape(value)


def normalize_option_key(value: Any) -> Optional[str]:
    """
    Validate a submitted option key.

    ``None`` and blank strings mean unanswered. Anything else must be one of
    A-D (case-insensitive).

    Raises:
        ValueError: For non-string values or keys outside A-D
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError("Option key must be a string")
    key = value.strip().upper()
    if not key:
        return None
    if key not in OPTION_KEYS:
        raise ValueError(
            f"Option key must be one of {', '.join(OPTION_KEYS)}, got {value!r}"
        )
    return key
