from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from aiolimiter import AsyncLimiter
from httpx_retries import Retry, RetryTransport

if TYPE_CHECKING:
    from types import TracebackType

    from suggestkit.config.http_resilience import ResilienceConfig, RetryPolicy

__all__ = ["ResilientClient", "build_retry"]

log = getLogger(__name__)


def build_retry(policy: RetryPolicy) -> Retry:
    return Retry(
        total=policy.total,
        backoff_factor=policy.backoff_factor,
        max_backoff_wait=policy.max_backoff_wait,
        respect_retry_after_header=policy.respect_retry_after_header,
        allowed_methods=tuple(policy.allowed_methods),
        status_forcelist=tuple(policy.status_forcelist),
        retry_on_exceptions=policy.retry_on_exceptions,
        backoff_jitter=policy.backoff_jitter,
    )


class ResilientClient:
    """Async JSON client for one backend, with retries and an optional rate limit.

    Retries happen inside the transport, so callers only see the final
    response or the final transport error. ``transport`` replaces the network
    layer underneath the retries, which lets tests plug in
    ``httpx.MockTransport``.
    """

    def __init__(
        self,
        config: ResilienceConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._limiter: AsyncLimiter | None = (
            AsyncLimiter(config.ratelimit.max_calls, config.ratelimit.per_seconds)
            if config.ratelimit
            else None
        )
        self._client = httpx.AsyncClient(
            base_url=config.base_url or "",
            timeout=config.timeout_seconds,
            headers=dict(config.default_headers or {}),
            transport=RetryTransport(transport=transport, retry=build_retry(config.retry)),
        )

    async def __aenter__(self) -> ResilientClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: object = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        if self._limiter is None:
            response = await self._client.request(method, url, json=json, params=params)
        else:
            async with self._limiter:
                response = await self._client.request(method, url, json=json, params=params)
        log.debug("%s %s -> %s (%s)", method, url, response.status_code, self.config.name)
        return response
