"""HTTP-level rate limiting using slowapi (per client address).

Guards administrative routes; per-user AI quotas live in app.gateway.rate_limiter.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

REINITIALIZE_LIMIT = "5/minute"
