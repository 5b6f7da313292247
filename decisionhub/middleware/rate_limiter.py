"""
Rate limiting configuration.

The Limiter instance is created in decisionhub/__init__.py with no default
limits; this module applies limits per blueprint. Ballot submission has its
own tighter limit declared on the view (VOTE_RATE_LIMIT).

Usage:
    from decisionhub.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Decision / role endpoints: 60/minute
        - Health check:              exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name in ("decisions", "roles"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured: decisions/roles: %s, votes: %s",
                    WRITE_LIMIT, app.config.get("VOTE_RATE_LIMIT"))
