"""Schemas for funding transactions and cost allocations."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

_WRITE_CONFIG = ConfigDict(extra="allow")


class TransactionBase(BaseModel):
    model_config = _WRITE_CONFIG

    organization_id: str | None = Field(default=None, max_length=64)
    financier_organization_id: str | None = Field(default=None, max_length=64)
    status: str | None = Field(default=None, max_length=64)
    date_planned: datetime | None = None
    ok_status: bool | None = None
    applied_for_amount: Decimal | None = None
    approved_amount: Decimal | None = None
    first_share_amount: Decimal | None = None
    second_share_amount: Decimal | None = None


class TransactionCreate(TransactionBase):
    project_id: str = Field(..., min_length=1, max_length=64)
    budget_id: str = Field(..., min_length=1)


class TransactionUpdate(TransactionBase):
    project_id: str | None = Field(default=None, min_length=1, max_length=64)
    budget_id: str | None = None


class TransactionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: str
    budget_id: str
    organization_id: str | None
    financier_organization_id: str | None
    status: str | None
    date_planned: datetime | None
    ok_status: bool | None
    applied_for_amount: Decimal | None
    approved_amount: Decimal | None
    first_share_amount: Decimal | None
    second_share_amount: Decimal | None
    lock_version: int
    deleted: bool


class CostAllocationCreate(BaseModel):
    model_config = _WRITE_CONFIG

    transaction_id: str = Field(..., min_length=1)
    cost_detail_id: str = Field(..., min_length=1)
    planned_amount: Decimal
    note: str | None = Field(default=None, max_length=255)


class CostAllocationUpdate(BaseModel):
    model_config = _WRITE_CONFIG

    planned_amount: Decimal | None = None
    note: str | None = Field(default=None, max_length=255)


class CostAllocationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    transaction_id: str
    cost_detail_id: str
    planned_amount: Decimal
    note: str | None
    deleted: bool


__all__ = [
    "CostAllocationCreate",
    "CostAllocationRead",
    "CostAllocationUpdate",
    "TransactionCreate",
    "TransactionRead",
    "TransactionUpdate",
]
