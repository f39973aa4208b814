from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# SQLite only autoincrements INTEGER primary keys.
IdType = BigInteger().with_variant(Integer(), 'sqlite')


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


class Base(DeclarativeBase):
    pass


class UserRole(str, Enum):
    USER = 'USER'
    ADMIN = 'ADMIN'


class WelfareStatus(str, Enum):
    PENDING = 'PENDING'
    APPROVED = 'APPROVED'
    REJECTED = 'REJECTED'


class Department(Base):
    __tablename__ = 'departments'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now, server_default=func.now()
    )


class ItemType(Base):
    __tablename__ = 'item_types'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now, server_default=func.now()
    )


# Names are unique regardless of case.
Index('departments_name_lower_key', func.lower(Department.name), unique=True)
Index('item_types_name_lower_key', func.lower(ItemType.name), unique=True)


class User(Base):
    __tablename__ = 'users'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    employee_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole, name='user_role'), nullable=False, default=UserRole.USER, server_default='USER'
    )
    department_id: Mapped[int] = mapped_column(IdType, ForeignKey('departments.id'), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now, server_default=func.now()
    )

    department: Mapped[Department] = relationship(lazy='joined')


class WelfareRecord(Base):
    __tablename__ = 'welfare_records'
    __table_args__ = (
        CheckConstraint('amount > 0', name='welfare_records_amount_positive_ck'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    order_number: Mapped[str | None] = mapped_column(Text)
    correction_details: Mapped[str | None] = mapped_column(Text)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    record_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[WelfareStatus] = mapped_column(
        SQLEnum(WelfareStatus, name='welfare_status'),
        nullable=False,
        default=WelfareStatus.PENDING,
        server_default='PENDING',
    )
    is_cancelled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    departure_date: Mapped[date | None] = mapped_column(Date)
    return_date: Mapped[date | None] = mapped_column(Date)
    user_id: Mapped[int] = mapped_column(IdType, ForeignKey('users.id'), nullable=False, index=True)
    item_type_id: Mapped[int] = mapped_column(IdType, ForeignKey('item_types.id'), nullable=False, index=True)
    department_id: Mapped[int] = mapped_column(IdType, ForeignKey('departments.id'), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now, server_default=func.now()
    )

    user: Mapped[User] = relationship(lazy='joined')
    item_type: Mapped[ItemType] = relationship(lazy='joined')
    department: Mapped[Department] = relationship(lazy='joined')


class StatusLog(Base):
    __tablename__ = 'status_logs'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    welfare_record_id: Mapped[int] = mapped_column(
        IdType, ForeignKey('welfare_records.id'), nullable=False, index=True
    )
    status: Mapped[WelfareStatus] = mapped_column(SQLEnum(WelfareStatus, name='welfare_status'), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    processed_by_id: Mapped[int] = mapped_column(IdType, ForeignKey('users.id'), nullable=False, index=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )

    processed_by: Mapped[User] = relationship(lazy='joined')


class AuthEvent(Base):
    __tablename__ = 'auth_events'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    attempted_email: Mapped[str] = mapped_column(String(320), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text)
    user_id: Mapped[int | None] = mapped_column(IdType, ForeignKey('users.id', ondelete='SET NULL'))
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )


class WebSession(Base):
    __tablename__ = 'web_sessions'
    __table_args__ = (
        UniqueConstraint('session_token', name='web_sessions_session_token_key'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    session_token: Mapped[str] = mapped_column(String(128), nullable=False)
    user_id: Mapped[int] = mapped_column(IdType, ForeignKey('users.id'), nullable=False, index=True)
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )
    last_seen_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
