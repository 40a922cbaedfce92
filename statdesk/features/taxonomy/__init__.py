"""
Option taxonomy feature package.

Published options, the draft table editors write to and the publish
coordinator that applies drafts atomically.
"""

# Re-export the primary building blocks for easy access.
from .api.router import router as taxonomy_router  # noqa: F401
from .service import TaxonomyService, load_default_options, taxonomy_service  # noqa: F401
