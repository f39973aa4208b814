"""Request bodies.

Clients send camelCase keys; snake_case field names are accepted too. Patch
models keep every field optional and the services read ``model_fields_set`` to
tell "absent" from "explicitly provided".
"""
from __future__ import annotations

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from welfare_portal.models import UserRole, WelfareStatus


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='ignore')


class LoginRequest(ApiModel):
    email: str
    password: str


class NamePayload(ApiModel):
    name: str | None = None


class UserCreate(ApiModel):
    employee_id: str
    name: str
    email: str
    password: str
    role: UserRole | None = None
    department_id: int


class UserPatch(ApiModel):
    name: str | None = None
    email: str | None = None
    password: str | None = None
    role: UserRole | None = None
    department_id: int | None = None


class WelfareRecordCreate(ApiModel):
    order_number: str | None = None
    correction_details: str | None = None
    amount: Decimal
    record_date: date | None = None
    status: WelfareStatus | None = None
    departure_date: date | None = None
    return_date: date | None = None
    user_id: int | None = None
    item_type_id: int
    department_id: int | None = None


class WelfareRecordPatch(ApiModel):
    order_number: str | None = None
    correction_details: str | None = None
    amount: Decimal | None = None
    record_date: date | None = None
    status: WelfareStatus | None = None
    is_cancelled: bool | None = None
    departure_date: date | None = None
    return_date: date | None = None
    item_type_id: int | None = None
    department_id: int | None = None
    status_note: str | None = None


class BulkStatusUpdate(ApiModel):
    record_ids: list[int] = Field(min_length=1)
    status: WelfareStatus
    notes: str | None = None


class StatusLogCreate(ApiModel):
    welfare_record_id: int
    status: WelfareStatus
    notes: str | None = None
