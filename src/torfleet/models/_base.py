"""Base models for TOR IoT records.

Every provider record model inherits from :class:`TorBaseModel` which
provides:

* A ``model_validator(mode="before")`` that strips provider sentinel
  values (``None``, ``""``, ``"--"``, NaN) so that ``AliasChoices``
  falls through to the next candidate field and defaults apply.
* A ``raw`` dict that captures the original payload.

Dashboard-facing models inherit from :class:`FleetModel`, which serializes
to the camelCase keys the dashboard reads.
"""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

# Sentinel strings the provider uses for "not available".
_SENTINELS = frozenset({"", "--", "NaN", "nan"})


class TorBaseModel(BaseModel):
    """Base for provider record models.

    Handles:
    * provider sentinel values → dropped so the field default is used
    * stashing the original record in ``raw``
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    raw: dict[str, Any] = Field(default_factory=dict)
    """Original provider record."""

    @staticmethod
    def _clean_dict(values: dict[str, Any]) -> dict[str, Any]:
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if value is None:
                continue
            if isinstance(value, str) and value.strip() in _SENTINELS:
                continue
            if isinstance(value, float) and math.isnan(value):
                continue
            cleaned[key] = value
        return cleaned

    @model_validator(mode="before")
    @classmethod
    def _clean_provider_values(cls, values: Any) -> Any:
        """Strip sentinel values and stash the raw payload."""
        if not isinstance(values, dict):
            return values
        original = dict(values)
        cleaned = TorBaseModel._clean_dict(original)

        # Keep an explicitly passed raw= (kwargs construction in tests).
        if "raw" not in values:
            cleaned["raw"] = original
        return cleaned


class FleetModel(BaseModel):
    """Base for records the store persists and the read API returns."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_json_dict(self, *, exclude_none: bool = False) -> dict[str, Any]:
        """camelCase, JSON-compatible representation."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=exclude_none)
