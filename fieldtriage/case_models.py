"""
Case Models
===========
Pydantic models for field cases. Cases are persisted and served with
camelCase keys (``createdAt``, ``symptomTags`` ...) and accept either
the camelCase alias or the Python field name on input.
"""

from __future__ import annotations

import random
import string
import time
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

Category = Literal["public", "medic", "supply"]
Priority = Literal["red", "blue", "green"]

_ID_ALPHABET = string.digits + string.ascii_lowercase


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def generate_case_id(timestamp_ms: Optional[int] = None) -> str:
    """Build a case id: epoch milliseconds followed by 9 random base36 chars."""
    stamp = now_ms() if timestamp_ms is None else timestamp_ms
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{stamp}{suffix}"


def _dedupe(tags: Optional[list[str]]) -> list[str]:
    seen: dict[str, None] = {}
    for tag in tags or []:
        seen.setdefault(tag, None)
    return list(seen)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Coordinates(_CamelModel):
    """GPS position in decimal degrees."""

    lat: float
    lng: float


class CaseInput(_CamelModel):
    """Fields supplied by an intake form when a case is submitted.

    Only ``category`` is required. The core performs no other validation,
    so an otherwise empty submission still produces a case.
    """

    category: Category
    symptom_tags: list[str] = Field(default_factory=list)
    supply_tags: Optional[list[str]] = None
    other_supply_description: Optional[str] = None
    subject_name: Optional[str] = None
    age: Optional[str] = None
    location_label: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    is_anonymous: Optional[bool] = None
    photo: Optional[str] = None

    @field_validator("symptom_tags", "supply_tags", mode="before")
    @classmethod
    def _lenient_tags(cls, value, info):
        if value is None:
            return [] if info.field_name == "symptom_tags" else None
        if isinstance(value, str):
            value = [value]
        return [str(tag) for tag in value]

    @field_validator(
        "other_supply_description", "subject_name", "age", "location_label", "photo",
        mode="before",
    )
    @classmethod
    def _lenient_text(cls, value):
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("symptom_tags", "supply_tags")
    @classmethod
    def _collapse_duplicates(cls, value):
        if value is None:
            return value
        return _dedupe(value)


class Case(_CamelModel):
    """A recorded incident with its priority tier and lifecycle flags.

    ``broadcasting`` is a view field. The engine fills it from the
    broadcast controller whenever a case is handed out or saved.
    """

    id: str
    category: Category
    created_at: int
    priority: Priority
    symptom_tags: list[str] = Field(default_factory=list)
    supply_tags: Optional[list[str]] = None
    other_supply_description: Optional[str] = None
    subject_name: Optional[str] = None
    age: Optional[str] = None
    location_label: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    is_anonymous: Optional[bool] = None
    photo: Optional[str] = None
    resolved: bool = False
    broadcasting: bool = False
    broadcast_started_at: Optional[int] = None

    def to_record(self) -> dict:
        """JSON-ready dict with camelCase keys, omitting unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
