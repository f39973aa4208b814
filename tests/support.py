from __future__ import annotations

from datetime import date
from decimal import Decimal

import fakeredis
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from welfare_portal.auth import Principal
from welfare_portal.cache import CacheGateway
from welfare_portal.db import build_session_factory, init_db
from welfare_portal.models import Department, ItemType, StatusLog, User, UserRole, WelfareRecord, WelfareStatus
from welfare_portal.security.sessions import principal_for_user


def make_engine():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    init_db(engine)
    return engine


def make_cache() -> CacheGateway:
    return CacheGateway(fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True))


class ServiceTestCase:
    """Mixin giving each test a fresh in-memory database and cache."""

    def setUp(self) -> None:
        self.engine = make_engine()
        self.session_factory = build_session_factory(self.engine)
        self.db: Session = self.session_factory()
        self.cache = make_cache()

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()

    def add_department(self, name: str) -> Department:
        department = Department(name=name)
        self.db.add(department)
        self.db.commit()
        return department

    def add_item_type(self, name: str) -> ItemType:
        item_type = ItemType(name=name)
        self.db.add(item_type)
        self.db.commit()
        return item_type

    def add_user(
        self,
        department: Department,
        *,
        employee_id: str,
        role: UserRole = UserRole.USER,
        name: str | None = None,
        password_hash: str = 'not-a-real-hash',
    ) -> User:
        user = User(
            employee_id=employee_id,
            name=name or f'Employee {employee_id}',
            email=f'{employee_id.lower()}@example.com',
            password_hash=password_hash,
            role=role,
            department_id=department.id,
        )
        self.db.add(user)
        self.db.commit()
        return user

    def add_record(
        self,
        user: User,
        item_type: ItemType,
        *,
        department: Department | None = None,
        amount: str = '100.00',
        status: WelfareStatus = WelfareStatus.PENDING,
        order_number: str | None = None,
        record_date: date | None = None,
    ) -> WelfareRecord:
        record = WelfareRecord(
            order_number=order_number,
            amount=Decimal(amount),
            record_date=record_date or date(2024, 1, 15),
            status=status,
            user_id=user.id,
            item_type_id=item_type.id,
            department_id=department.id if department else user.department_id,
        )
        self.db.add(record)
        self.db.commit()
        return record

    def principal(self, user: User) -> Principal:
        return principal_for_user(user)

    def reload(self, model, row_id: int):
        self.db.expire_all()
        return self.db.get(model, row_id)

    def logs_for(self, record_id: int) -> list[StatusLog]:
        return list(
            self.db.execute(
                select(StatusLog).where(StatusLog.welfare_record_id == record_id).order_by(StatusLog.id.asc())
            ).scalars().all()
        )
