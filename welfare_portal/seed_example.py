from sqlalchemy import func, select

from welfare_portal.config import settings
from welfare_portal.db import build_engine, build_session_factory, init_db
from welfare_portal.models import Department, ItemType, User, UserRole
from welfare_portal.security.passwords import hash_password

DEMO_DEPARTMENTS = ['Human Resources', 'Finance', 'Engineering']
DEMO_ITEM_TYPES = ['Medical', 'Education', 'Travel']


def _get_or_create_named(db, model, name: str):
    row = db.execute(select(model).where(func.lower(model.name) == name.lower())).scalar_one_or_none()
    if not row:
        row = model(name=name)
        db.add(row)
        db.flush()
    return row


def seed() -> None:
    engine = build_engine(settings)
    init_db(engine)
    session_factory = build_session_factory(engine)

    with session_factory() as db:
        departments = [_get_or_create_named(db, Department, name) for name in DEMO_DEPARTMENTS]
        for name in DEMO_ITEM_TYPES:
            _get_or_create_named(db, ItemType, name)

        admin = db.execute(select(User).where(User.email == 'admin@example.com')).scalar_one_or_none()
        if not admin:
            db.add(
                User(
                    employee_id='EMP0001',
                    name='Portal Admin',
                    email='admin@example.com',
                    password_hash=hash_password('adminpass'),
                    role=UserRole.ADMIN,
                    department_id=departments[0].id,
                )
            )

        employee = db.execute(select(User).where(User.email == 'employee@example.com')).scalar_one_or_none()
        if not employee:
            db.add(
                User(
                    employee_id='EMP0002',
                    name='Demo Employee',
                    email='employee@example.com',
                    password_hash=hash_password('employeepass'),
                    role=UserRole.USER,
                    department_id=departments[1].id,
                )
            )

        db.commit()


if __name__ == '__main__':
    seed()
    print('Seed data inserted/verified.')
