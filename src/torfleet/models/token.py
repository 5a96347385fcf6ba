"""Authentication token model."""

from __future__ import annotations

import time

from pydantic import BaseModel, ConfigDict, Field


class AuthToken(BaseModel):
    """Bearer token returned by ``/Auth/login``.

    Parameters
    ----------
    value : str
        Opaque bearer credential.
    acquired_at : float
        Monotonic timestamp (``time.monotonic()``) of the login.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        str_strip_whitespace=True,
    )

    value: str = Field(min_length=1)
    acquired_at: float = Field(default_factory=time.monotonic)

    def __str__(self) -> str:
        return "<AuthToken redacted>"
