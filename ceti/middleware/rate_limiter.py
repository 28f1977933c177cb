"""
Rate limiting configuration.

The Limiter instance is created in ceti/__init__.py with no default
limits; this module applies limits per blueprint.

Usage:
    from ceti.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

TRANSCRIPTION_LIMIT = "10/minute"
LOGIN_LIMIT = "10/minute"
WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"

_WRITE_BLUEPRINTS = ("program", "task", "attachment", "user", "setup")
_READ_BLUEPRINTS = ("search", "kpi")


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints (per remote IP).

        - Transcription:  10/minute  (provider calls are expensive)
        - Auth:           10/minute  (password guessing)
        - Mutation APIs:  60/minute
        - Search / KPIs:  200/minute
        - Health check:   exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for name, limit in (("transcription", TRANSCRIPTION_LIMIT), ("auth", LOGIN_LIMIT)):
        bp = app.blueprints.get(name)
        if bp:
            limiter.limit(limit)(bp)

    for name in _WRITE_BLUEPRINTS:
        bp = app.blueprints.get(name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    for name in _READ_BLUEPRINTS:
        bp = app.blueprints.get(name)
        if bp:
            limiter.limit(READ_LIMIT)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: transcription/auth %s, write %s, read %s",
        TRANSCRIPTION_LIMIT, WRITE_LIMIT, READ_LIMIT,
    )
