"""Per-client rate limits for lobby creation and joins.

Limits are keyed by client IP and read from settings on each check, so
CREATE_LOBBY_RATE_LIMIT and JOIN_LOBBY_RATE_LIMIT can be tuned without code
changes. RATE_LIMITING_ENABLED=false turns every limit off.
"""

from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.util import get_remote_address

from lobbysync.settings import Settings, get_settings

limiter = Limiter(key_func=get_remote_address)

RateLimitDependency = Callable[[Request, Response], Awaitable[None]]


def lobby_rate_limit(name: str, limit_for: Callable[[Settings], str]) -> RateLimitDependency:
    """Build a FastAPI dependency enforcing one named limit.

    Args:
        name: Name SlowAPI tracks the limit under; must be unique per endpoint
        limit_for: Picks the "requests/period" string out of settings

    Returns:
        An async dependency for a route's ``dependencies`` list
    """

    async def _check(request: Request, response: Response) -> None:
        pass

    # SlowAPI keys its counters on the decorated function's name
    _check.__name__ = f"lobby_rate_limit_{name}"
    checked = limiter.limit(lambda: limit_for(get_settings()))(_check)

    async def dependency(request: Request, response: Response) -> None:
        if not get_settings().rate_limiting_enabled:
            return
        await checked(request, response)

    return dependency


create_lobby_rate_limit = lobby_rate_limit("create", lambda s: s.create_lobby_rate_limit)
join_lobby_rate_limit = lobby_rate_limit("join", lambda s: s.join_lobby_rate_limit)
