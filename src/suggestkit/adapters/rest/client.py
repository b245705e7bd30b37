"""``EntityStore`` backed by the design backend's REST API."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from suggestkit.adapters.http_resilience import ResilientClient
from suggestkit.config.backend import BackendConfig, get_backend_config
from suggestkit.domain.errors import BackingStoreError
from suggestkit.domain.model import RelationKind
from suggestkit.domain.ports import EntityStore

from .schema import EntityEnvelope, ErrorEnvelope, LinkEnvelope, LinkListEnvelope
from .translator import collection_path, fields_from_record, item_path, to_request_body

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable
    from types import TracebackType

    from suggestkit.config.http_resilience import ResilienceConfig
    from suggestkit.domain.model import EntityType
    from suggestkit.domain.ports import EntityFields

log = getLogger(__name__)

TRANSIENT_STATUS_CODES = frozenset({408, 429})
API_DTO_DEFAULT_ROLE = "req"

_LINK_ROUTES: dict[RelationKind, tuple[str, str]] = {
    RelationKind.API_SEQUENCE: ("/api-sequence-links", "sequenceId"),
    RelationKind.API_DTO: ("/api-dto-links", "dtoId"),
}


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


class BackendAPIError(BackingStoreError):
    """Raised when the backend answers with an error status or error envelope."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        code: str | None = None,
        transient: bool = False,
    ) -> None:
        super().__init__(message, transient=transient)
        self.status_code = status_code
        self.code = code


def _is_transient_status(status_code: int) -> bool:
    return status_code in TRANSIENT_STATUS_CODES or status_code >= 500


def _raise_for_error(method: str, url: str, response: httpx.Response) -> None:
    if response.status_code < 400:
        return
    code: str | None = None
    message = response.reason_phrase or f"HTTP {response.status_code}"
    try:
        envelope = ErrorEnvelope.model_validate(response.json())
    except (ValueError, ValidationError):
        pass
    else:
        code = envelope.error.code
        message = envelope.error.message
    transient = _is_transient_status(response.status_code)
    log.warning(
        "Backend rejected %s %s with %s (%s): %s", method, url, response.status_code, code, message
    )
    raise BackendAPIError(
        f"{method} {url} -> {response.status_code}: {message}",
        status_code=response.status_code,
        code=code,
        transient=transient,
    )


@dataclass(slots=True)
class RestEntityStore:
    """Apply entity mutations through the backend's CRUD routes.

    Use as an async context manager to share one HTTP client across calls;
    outside of one, each call opens and closes its own client. Without an
    explicit ``config`` the backend settings are read from the environment on
    first use, so a store that is never called needs no configuration.
    """

    config: BackendConfig | None = None
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=_default_client_factory
    )
    _client: ResilientClient | None = field(default=None, init=False, repr=False)
    _link_ids: dict[tuple[str, str, RelationKind], str] = field(
        default_factory=dict["tuple[str, str, RelationKind]", "str"], init=False, repr=False
    )

    @property
    def backend_config(self) -> BackendConfig:
        if self.config is None:
            self.config = get_backend_config()
        return self.config

    async def __aenter__(self) -> RestEntityStore:
        if self._client is None:
            self._client = self.client_factory(self.backend_config.resilience)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[ResilientClient]:
        if self._client is not None:
            yield self._client
            return
        async with self.client_factory(self.backend_config.resilience) as client:
            yield client

    async def _request(
        self,
        method: str,
        url: str,
        *,
        json: object = None,
        params: dict[str, str] | None = None,
    ) -> object:
        async with self._session() as client:
            try:
                response = await client.request(method, url, json=json, params=params)
            except httpx.TimeoutException as exc:
                raise BackingStoreError(f"{method} {url} timed out", transient=True) from exc
            except httpx.HTTPError as exc:
                raise BackingStoreError(f"{method} {url} failed: {exc}", transient=True) from exc
        _raise_for_error(method, url, response)
        if response.status_code == httpx.codes.NO_CONTENT or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise BackingStoreError(f"{method} {url} returned invalid JSON") from exc

    async def create_entity(self, entity_type: EntityType, fields: EntityFields) -> str:
        try:
            url = collection_path(entity_type, fields, self.backend_config.project_id)
        except ValueError as exc:
            raise BackingStoreError(str(exc)) from exc
        payload = await self._request(
            "POST", url, json=to_request_body(entity_type, fields, creating=True)
        )
        envelope = _parse(EntityEnvelope, payload, url)
        log.debug("Created %s %s", entity_type, envelope.data.id)
        return envelope.data.id

    async def update_entity(
        self, entity_type: EntityType, real_id: str, fields: EntityFields
    ) -> None:
        await self._request(
            "PUT", item_path(entity_type, real_id), json=to_request_body(entity_type, fields)
        )

    async def delete_entity(self, entity_type: EntityType, real_id: str) -> None:
        await self._request("DELETE", item_path(entity_type, real_id))

    async def get_entity(self, entity_type: EntityType, real_id: str) -> dict[str, object]:
        url = item_path(entity_type, real_id)
        envelope = _parse(EntityEnvelope, await self._request("GET", url), url)
        return fields_from_record(entity_type, envelope.data.model_dump())

    async def connect_entities(self, source: str, target: str, kind: RelationKind) -> None:
        if kind is RelationKind.PARENT_CHILD:
            await self._request("PUT", f"/modules/{target}", json={"parentId": source})
            return
        url, target_key = _link_route(kind)
        body: dict[str, object] = {"apiId": source, target_key: target}
        if kind is RelationKind.API_DTO:
            body["role"] = API_DTO_DEFAULT_ROLE
        envelope = _parse(LinkEnvelope, await self._request("POST", url, json=body), url)
        self._link_ids[(source, target, kind)] = envelope.data.id

    async def disconnect_entities(self, source: str, target: str, kind: RelationKind) -> None:
        if kind is RelationKind.PARENT_CHILD:
            await self._request("PUT", f"/modules/{target}", json={"parentId": None})
            return
        url, target_key = _link_route(kind)
        link_id = self._link_ids.pop((source, target, kind), None)
        if link_id is None:
            payload = await self._request(
                "GET", url, params={"apiId": source, target_key: target}
            )
            links = _parse(LinkListEnvelope, payload, url).data
            if not links:
                raise BackingStoreError(f"No {kind} link between {source} and {target}")
            link_id = links[0].id
        await self._request("DELETE", f"{url}/{link_id}")


def _link_route(kind: RelationKind) -> tuple[str, str]:
    route = _LINK_ROUTES.get(kind)
    if route is None:
        raise BackingStoreError(f"Relation {kind} is not supported by the backend")
    return route


def _parse[M: (EntityEnvelope, LinkEnvelope, LinkListEnvelope)](
    model: type[M], payload: object, url: str
) -> M:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise BackingStoreError(f"Unexpected response payload from {url}") from exc


if TYPE_CHECKING:
    _store_check: EntityStore = RestEntityStore()
