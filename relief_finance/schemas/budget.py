"""Schemas for budgets and cost lines."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

# Write payloads keep extra keys so the engine can reject derived or unknown
# fields with a structured error instead of silently dropping them.
_WRITE_CONFIG = ConfigDict(extra="allow")


class BudgetCreate(BaseModel):
    model_config = _WRITE_CONFIG

    project_id: str = Field(..., min_length=1, max_length=64)
    description: str | None = Field(default=None, max_length=255)
    local_currency: str = Field(..., min_length=3, max_length=3)
    local_to_gbp_rate_id: str | None = None
    local_to_sek_rate_id: str | None = None
    local_to_eur_rate_id: str | None = None


class BudgetUpdate(BaseModel):
    model_config = _WRITE_CONFIG

    project_id: str | None = Field(default=None, min_length=1, max_length=64)
    description: str | None = Field(default=None, max_length=255)
    local_currency: str | None = Field(default=None, min_length=3, max_length=3)
    local_to_gbp_rate_id: str | None = None
    local_to_sek_rate_id: str | None = None
    local_to_eur_rate_id: str | None = None


class BudgetRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: str
    description: str | None
    local_currency: str
    local_to_gbp_rate_id: str | None
    local_to_sek_rate_id: str | None
    local_to_eur_rate_id: str | None
    lock_version: int
    deleted: bool
    created_at: datetime
    updated_at: datetime


class CostDetailCreate(BaseModel):
    model_config = _WRITE_CONFIG

    budget_id: str = Field(..., min_length=1)
    description: str | None = Field(default=None, max_length=255)
    cost_type: str | None = Field(default=None, max_length=128)
    units: Decimal = Field(default=Decimal("0"), description="Whole number of units")
    unit_price: Decimal = Field(default=Decimal("0"))
    percentage_charging: Decimal = Field(default=Decimal("0"))


class CostDetailUpdate(BaseModel):
    model_config = _WRITE_CONFIG

    description: str | None = Field(default=None, max_length=255)
    cost_type: str | None = Field(default=None, max_length=128)
    units: Decimal | None = None
    unit_price: Decimal | None = None
    percentage_charging: Decimal | None = None


class CostDetailRead(BaseModel):
    """Cost line with its derived amounts; ``None`` amounts have no rate assigned yet."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    budget_id: str
    description: str | None
    cost_type: str | None
    units: int
    unit_price: Decimal
    percentage_charging: Decimal
    amount_local: Decimal | None
    amount_gbp: Decimal | None
    amount_sek: Decimal | None
    amount_eur: Decimal | None
    deleted: bool


__all__ = [
    "BudgetCreate",
    "BudgetRead",
    "BudgetUpdate",
    "CostDetailCreate",
    "CostDetailRead",
    "CostDetailUpdate",
]
