"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in opready/__init__.py with no default
limits; this module applies granular limits per route category.

Usage:
    from opready.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# Batch allocation and uploads touch many rows / large bodies
ALLOCATION_LIMIT = "20/minute"
WRITE_LIMIT = "120/minute"
READ_LIMIT = "300/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Allocation endpoints: 20/minute
        - Criteria / evidence:  120/minute
        - Projects / templates: 300/minute
        - Health check:         exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled (TESTING=%s)", app.config.get("TESTING"))
        return

    bp = app.blueprints.get("allocation")
    if bp:
        limiter.limit(ALLOCATION_LIMIT)(bp)

    for bp_name in ("criteria", "evidence"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    for bp_name in ("projects", "templates"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(READ_LIMIT)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: allocation: %s, write: %s, read: %s",
        ALLOCATION_LIMIT, WRITE_LIMIT, READ_LIMIT,
    )
