"""
Entry store feature package.
"""

from .api.router import router as entries_router  # noqa: F401
from .service import EntryService, entry_service  # noqa: F401
