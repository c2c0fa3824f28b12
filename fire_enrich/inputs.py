"""Build input rows for a single email entered by hand."""

import re

from fire_enrich.errors import InvalidEmailError
from fire_enrich.models import Row

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email))


def single_entry_rows(email: str, name: str | None = None) -> tuple[list[Row], list[str]]:
    """Return ``(rows, columns)`` for one email, with an optional name column.

    Raises:
        InvalidEmailError: If the email is empty or malformed.
    """
    email = email.strip()
    if not email:
        raise InvalidEmailError("Please enter an email address")
    if not is_valid_email(email):
        raise InvalidEmailError("Please enter a valid email address")
    row: Row = {"email": email}
    columns = ["email"]
    if name and name.strip():
        row["name"] = name.strip()
        columns.append("name")
    return [row], columns
