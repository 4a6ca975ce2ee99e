# Copyright (c) Syntropy Systems
"""Shared Pydantic model helpers for perfgate."""

from __future__ import annotations

from typing import ClassVar

from pydantic import BaseModel, ConfigDict


class PerfgateBaseModel(BaseModel):
    """Immutable base model for receipts and engine values."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )


class StrictConfigModel(BaseModel):
    """Base model for user-written config that rejects unknown keys."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="forbid",
        populate_by_name=True,
    )
