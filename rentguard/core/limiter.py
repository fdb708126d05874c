from slowapi import Limiter
from slowapi.util import get_remote_address

from rentguard.core.settings import settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
    storage_uri=settings.redis_url,
    enabled=settings.rate_limit_enabled,
)


def token_rate_limit() -> str:
    return f"{settings.token_rate_limit_per_minute}/minute"


__all__ = ["limiter", "token_rate_limit"]
