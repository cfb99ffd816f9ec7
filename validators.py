import re
from typing import Any, Optional

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class TextValidator:
    """Basic checks for the free-text fields of the book form."""

    @staticmethod
    def validate_title(title: Optional[str]) -> bool:
        if title is None:
            return False
        return bool(title.strip())

    @staticmethod
    def validate_author(author: Optional[str]) -> bool:
        # must not be digits only
        if author is None:
            return False
        t = author.strip()
        if not t:
            return False
        return not t.isdigit()

    @staticmethod
    def normalize_email(email: Optional[str]) -> str:
        if email is None:
            return ""
        return email.strip().lower()

    @staticmethod
    def validate_email(email: Optional[str]) -> bool:
        return bool(_EMAIL_RE.match(TextValidator.normalize_email(email)))


class CopyCountValidator:
    """Copy counts must be whole numbers with 0 <= available <= total."""

    @staticmethod
    def validate_total(total: Any) -> bool:
        return isinstance(total, int) and not isinstance(total, bool) and total >= 1

    @staticmethod
    def validate_counts(total: int, available: int) -> bool:
        return 0 <= available <= total
