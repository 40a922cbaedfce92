"""
Analytics feature package.

Filter compilation, the aggregation engine behind the chart endpoints,
saved comparison periods and chart markers live together in this slice.
"""

# Re-export the primary building blocks for easy access.
from .api.router import router as analytics_router  # noqa: F401
from .filters import compile_filter, parse_filter_spec  # noqa: F401
from .service import (  # noqa: F401
    AnalyticsService,
    analytics_service,
    chart_marker_service,
    saved_period_service,
)
