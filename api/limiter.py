"""
api/limiter.py -- The one slowapi Limiter shared by the app and the routes.

api/main.py mounts it (SlowAPIMiddleware + app.state.limiter) and
api/routes/v1/auth.py decorates POST /login with it. Both must see the same
instance: a second Limiter would keep its own counters and never trip.

Counters live in process memory ("memory://"), keyed by client address. With
several workers each one counts separately, so the effective login budget is
LOGIN_RATE_LIMIT times the worker count.

LOGIN_RATE_LIMIT is read from settings once, at import.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")

LOGIN_RATE_LIMIT = get_settings().login_rate_limit
