"""Public interface for reading suggestion batch submissions."""

from __future__ import annotations

from .schema import LegacySubmissionModel, SubmissionModel, parse_reference
from .translator import (
    SubmissionError,
    is_legacy_submission,
    legacy_to_native,
    load_submission,
    parse_submission,
)

__all__ = [
    "LegacySubmissionModel",
    "SubmissionError",
    "SubmissionModel",
    "is_legacy_submission",
    "legacy_to_native",
    "load_submission",
    "parse_reference",
    "parse_submission",
]
