"""Shared slowapi limiter.

Keyed by client address. ``main.create_app`` attaches it to ``app.state`` and
the login routes (HR password, OTP check, employee login) apply
``settings.LOGIN_RATE_LIMIT`` through ``@limiter.limit``.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from attendance_console.config import settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.DEFAULT_RATE_LIMIT],
)
