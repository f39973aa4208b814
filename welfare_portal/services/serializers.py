from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from welfare_portal.models import Department, ItemType, StatusLog, User, WelfareRecord


def iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def money(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return str(Decimal(value).quantize(Decimal('0.01')))


def enum_value(value) -> str:
    return value.value if hasattr(value, 'value') else str(value)


def named_row(row: Department | ItemType) -> dict:
    return {
        'id': row.id,
        'name': row.name,
        'createdAt': iso(row.created_at),
        'updatedAt': iso(row.updated_at),
    }


def user_summary(user: User) -> dict:
    return {
        'id': user.id,
        'name': user.name,
        'employeeId': user.employee_id,
        'email': user.email,
        'role': enum_value(user.role),
    }


def user_dict(user: User) -> dict:
    return {
        **user_summary(user),
        'departmentId': user.department_id,
        'department': named_row(user.department) if user.department else None,
        'createdAt': iso(user.created_at),
        'updatedAt': iso(user.updated_at),
    }


def status_log_dict(log: StatusLog) -> dict:
    return {
        'id': log.id,
        'welfareRecordId': log.welfare_record_id,
        'status': enum_value(log.status),
        'notes': log.notes,
        'processedById': log.processed_by_id,
        'processedBy': user_summary(log.processed_by) if log.processed_by else None,
        'timestamp': iso(log.timestamp),
    }


def welfare_record_dict(record: WelfareRecord) -> dict:
    return {
        'id': record.id,
        'orderNumber': record.order_number,
        'correctionDetails': record.correction_details,
        'amount': money(record.amount),
        'recordDate': iso(record.record_date),
        'status': enum_value(record.status),
        'isCancelled': record.is_cancelled,
        'departureDate': iso(record.departure_date),
        'returnDate': iso(record.return_date),
        'userId': record.user_id,
        'itemTypeId': record.item_type_id,
        'departmentId': record.department_id,
        'createdAt': iso(record.created_at),
        'updatedAt': iso(record.updated_at),
        'user': {**user_summary(record.user), 'departmentId': record.user.department_id} if record.user else None,
        'department': named_row(record.department) if record.department else None,
        'itemType': named_row(record.item_type) if record.item_type else None,
    }
