"""
Domain types shared across features.
"""

from .sections import KEYWORD_SECTIONS, VALID_SECTIONS, is_valid_section, require_section

__all__ = ["KEYWORD_SECTIONS", "VALID_SECTIONS", "is_valid_section", "require_section"]
