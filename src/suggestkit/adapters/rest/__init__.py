"""Public interface for the design-backend REST adapter."""

from __future__ import annotations

from .client import BackendAPIError, RestEntityStore
from .translator import ROUTES, collection_path, fields_from_record, item_path, to_request_body

__all__ = [
    "ROUTES",
    "BackendAPIError",
    "RestEntityStore",
    "collection_path",
    "fields_from_record",
    "item_path",
    "to_request_body",
]
