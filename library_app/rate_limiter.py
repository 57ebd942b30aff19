from slowapi import Limiter
from slowapi.util import get_remote_address

from library_app.config import settings


limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.DEFAULT_RATE_LIMIT],
    headers_enabled=True,
    enabled=settings.RATE_LIMIT_ENABLED,
)
