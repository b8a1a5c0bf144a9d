"""
Per-blueprint rate limits (Flask-Limiter).

The Limiter in ``tracker/__init__.py`` carries no default limit; this
module attaches one limit string per blueprint after registration.
``RATE_LIMITS`` in config overrides individual entries, and the health
blueprint is always exempt.
"""

import logging

logger = logging.getLogger(__name__)

# Per remote address. Job writes are the tightest: one bulk-assign call
# can create thousands of rows. Grouping is the loosest: the worklist
# fires one detail request per expanded group.
BLUEPRINT_LIMITS = {
    "jobs": "60/minute",
    "elements": "120/minute",
    "projects": "120/minute",
    "grouping": "200/minute",
}

EXEMPT_BLUEPRINTS = ("health",)


def effective_limits(app) -> dict:
    limits = dict(BLUEPRINT_LIMITS)
    limits.update(app.config.get("RATE_LIMITS") or {})
    return {name: limit for name, limit in limits.items() if limit}


def init_rate_limits(app, limiter):
    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        logger.debug("Rate limits not applied")
        return

    applied = {}
    for name, limit in effective_limits(app).items():
        blueprint = app.blueprints.get(name)
        if blueprint is None:
            logger.warning("Rate limit configured for unknown blueprint %r", name)
            continue
        limiter.limit(limit)(blueprint)
        applied[name] = limit

    for name in EXEMPT_BLUEPRINTS:
        if name in app.blueprints:
            limiter.exempt(app.blueprints[name])

    logger.info("Rate limits: %s", ", ".join(f"{n}={l}" for n, l in applied.items()))
