"""
Closed set of category axes an entry can carry values for.
"""

from statdesk.errors import ValidationError

VALID_SECTIONS: tuple[str, ...] = (
    "kontaktart",
    "person",
    "thema",
    "zeitfenster",
    "tageszeit",
    "dauer",
    "referenz",
)

# Only topic options carry search keywords
KEYWORD_SECTIONS: frozenset[str] = frozenset({"thema"})


def is_valid_section(section: str | None) -> bool:
    return section in VALID_SECTIONS


def require_section(section: str | None) -> str:
    """Return the section unchanged or raise ValidationError."""
    if not section or not is_valid_section(section):
        raise ValidationError(
            f"Valid section parameter required, got {section!r}", error_code="invalid_section"
        )
    return section
