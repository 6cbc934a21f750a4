"""Shared Pydantic base models for the control API."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class FitGlueBase(BaseModel):
    """Base model with shared config for all FitGlue API schemas."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class ErrorDetail(BaseModel):
    detail: str
