from __future__ import annotations

import unittest
from datetime import date
from decimal import Decimal

from welfare_portal.errors import Forbidden, InvalidInput, NotFound
from welfare_portal.models import UserRole, WelfareRecord, WelfareStatus
from welfare_portal.schemas import WelfareRecordCreate, WelfareRecordPatch
from welfare_portal.services.welfare_record_service import (
    RecordFilters,
    bulk_update_status,
    create_record,
    delete_record,
    get_record,
    list_my_records,
    list_records,
    update_record,
)

from tests.support import ServiceTestCase


class WelfareRecordServiceTestCase(ServiceTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.finance = self.add_department('Finance')
        self.sales = self.add_department('Sales')
        self.medical = self.add_item_type('Medical')
        self.travel = self.add_item_type('Travel')
        self.alice = self.add_user(self.finance, employee_id='E100', name='Alice')
        self.bob = self.add_user(self.finance, employee_id='E200', name='Bob')
        self.carol = self.add_user(self.sales, employee_id='E300', name='Carol')
        self.admin = self.add_user(self.sales, employee_id='A1', name='Admin', role=UserRole.ADMIN)


class CreateRecordTests(WelfareRecordServiceTestCase, unittest.TestCase):
    def test_self_service_defaults_and_initial_log(self) -> None:
        created = create_record(
            self.db,
            self.cache,
            principal=self.principal(self.alice),
            payload=WelfareRecordCreate(amount=Decimal('500'), itemTypeId=self.medical.id),
        )

        self.assertEqual(created['status'], 'PENDING')
        self.assertEqual(created['userId'], self.alice.id)
        self.assertEqual(created['departmentId'], self.finance.id)
        self.assertEqual(created['amount'], '500.00')
        logs = self.logs_for(created['id'])
        self.assertEqual(len(logs), 1)
        self.assertEqual(logs[0].status, WelfareStatus.PENDING)
        self.assertEqual(logs[0].notes, 'Record created')
        self.assertEqual(logs[0].processed_by_id, self.alice.id)

        mine = list_my_records(
            self.db, self.cache, principal=self.principal(self.alice), search=None, status=None, page=1, limit=10
        )
        self.assertEqual([row['id'] for row in mine['data']], [created['id']])

    def test_non_admin_cannot_create_for_someone_else(self) -> None:
        with self.assertRaises(Forbidden):
            create_record(
                self.db,
                self.cache,
                principal=self.principal(self.alice),
                payload=WelfareRecordCreate(amount=Decimal('10'), itemTypeId=self.medical.id, userId=self.bob.id),
            )

    def test_non_admin_cannot_choose_initial_status(self) -> None:
        with self.assertRaises(Forbidden):
            create_record(
                self.db,
                self.cache,
                principal=self.principal(self.alice),
                payload=WelfareRecordCreate(amount=Decimal('10'), itemTypeId=self.medical.id, status='APPROVED'),
            )

    def test_admin_creates_on_behalf_of_user(self) -> None:
        created = create_record(
            self.db,
            self.cache,
            principal=self.principal(self.admin),
            payload=WelfareRecordCreate(amount=Decimal('75.5'), itemTypeId=self.travel.id, userId=self.carol.id),
        )
        self.assertEqual(created['userId'], self.carol.id)
        self.assertEqual(created['departmentId'], self.sales.id)
        self.assertEqual(self.logs_for(created['id'])[0].processed_by_id, self.admin.id)

    def test_unknown_item_type_is_invalid_input(self) -> None:
        with self.assertRaises(InvalidInput):
            create_record(
                self.db,
                self.cache,
                principal=self.principal(self.alice),
                payload=WelfareRecordCreate(amount=Decimal('10'), itemTypeId=9999),
            )

    def test_amount_must_be_positive(self) -> None:
        for amount in (Decimal('0'), Decimal('-5')):
            with self.assertRaises(InvalidInput):
                create_record(
                    self.db,
                    self.cache,
                    principal=self.principal(self.alice),
                    payload=WelfareRecordCreate(amount=amount, itemTypeId=self.medical.id),
                )


class ListRecordTests(WelfareRecordServiceTestCase, unittest.TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.alice_record = self.add_record(self.alice, self.medical, order_number='ORD-1', record_date=date(2024, 1, 1))
        self.bob_record = self.add_record(self.bob, self.travel, order_number='ORD-2', record_date=date(2024, 2, 1))
        self.carol_record = self.add_record(self.carol, self.medical, order_number='ORD-3', record_date=date(2024, 3, 1))

    def _ids(self, principal, **filters) -> list[int]:
        result = list_records(
            self.db, self.cache, principal=principal, filters=RecordFilters(**filters), page=1, limit=50
        )
        return [row['id'] for row in result['data']]

    def test_admin_sees_everything_newest_first(self) -> None:
        self.assertEqual(
            self._ids(self.principal(self.admin)),
            [self.carol_record.id, self.bob_record.id, self.alice_record.id],
        )

    def test_non_admin_sees_own_and_department_records(self) -> None:
        self.assertEqual(self._ids(self.principal(self.alice)), [self.bob_record.id, self.alice_record.id])
        self.assertEqual(self._ids(self.principal(self.carol)), [self.carol_record.id])

    def test_explicit_filters_never_widen_visibility(self) -> None:
        alice = self.principal(self.alice)
        self.assertEqual(self._ids(alice, user_id=self.carol.id), [])
        self.assertEqual(self._ids(alice, department_id=self.sales.id), [])
        self.assertEqual(self._ids(alice, search='ORD-3'), [])
        self.assertEqual(self._ids(alice, search='Carol'), [])

    def test_filters_narrow(self) -> None:
        admin = self.principal(self.admin)
        self.assertEqual(self._ids(admin, item_type_id=self.travel.id), [self.bob_record.id])
        self.assertEqual(
            self._ids(admin, from_date=date(2024, 2, 1), to_date=date(2024, 3, 1)),
            [self.carol_record.id, self.bob_record.id],
        )
        self.assertEqual(self._ids(admin, search='bob'), [self.bob_record.id])
        self.assertEqual(self._ids(admin, search='sales'), [self.carol_record.id])
        self.assertEqual(self._ids(admin, search='E100'), [self.alice_record.id])
        self.assertEqual(self._ids(admin, is_cancelled=True), [])

    def test_cached_list_is_per_caller_scope(self) -> None:
        self.assertEqual(len(self._ids(self.principal(self.admin))), 3)
        self.assertEqual(self._ids(self.principal(self.carol)), [self.carol_record.id])

    def test_list_requeries_after_a_write(self) -> None:
        admin = self.principal(self.admin)
        self.assertEqual(len(self._ids(admin)), 3)

        create_record(
            self.db,
            self.cache,
            principal=admin,
            payload=WelfareRecordCreate(amount=Decimal('20'), itemTypeId=self.medical.id, recordDate=date(2024, 4, 1)),
        )

        self.assertEqual(len(self._ids(admin)), 4)


class GetRecordTests(WelfareRecordServiceTestCase, unittest.TestCase):
    def test_not_found_and_forbidden_are_distinct(self) -> None:
        record = self.add_record(self.alice, self.medical)
        with self.assertRaises(NotFound):
            get_record(self.db, self.cache, principal=self.principal(self.carol), record_id=9999)
        with self.assertRaises(Forbidden):
            get_record(self.db, self.cache, principal=self.principal(self.carol), record_id=record.id)

    def test_cached_detail_still_checks_access(self) -> None:
        record = self.add_record(self.alice, self.medical)
        detail = get_record(self.db, self.cache, principal=self.principal(self.bob), record_id=record.id)
        self.assertEqual(detail['id'], record.id)
        self.assertEqual(detail['department']['name'], 'Finance')

        with self.assertRaises(Forbidden):
            get_record(self.db, self.cache, principal=self.principal(self.carol), record_id=record.id)


class UpdateRecordTests(WelfareRecordServiceTestCase, unittest.TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.record = self.add_record(self.alice, self.medical)

    def test_status_change_appends_log_with_default_note(self) -> None:
        updated = update_record(
            self.db,
            self.cache,
            principal=self.principal(self.admin),
            record_id=self.record.id,
            patch=WelfareRecordPatch(status='APPROVED'),
        )

        self.assertEqual(updated['status'], 'APPROVED')
        logs = self.logs_for(self.record.id)
        self.assertEqual(len(logs), 1)
        self.assertEqual(logs[0].status, WelfareStatus.APPROVED)
        self.assertIn('PENDING', logs[0].notes)
        self.assertIn('APPROVED', logs[0].notes)
        self.assertEqual(updated['statusLogs'][0]['status'], 'APPROVED')

    def test_explicit_status_note_is_used(self) -> None:
        update_record(
            self.db,
            self.cache,
            principal=self.principal(self.admin),
            record_id=self.record.id,
            patch=WelfareRecordPatch(status='REJECTED', statusNote='Missing receipt'),
        )
        self.assertEqual(self.logs_for(self.record.id)[0].notes, 'Missing receipt')

    def test_member_may_only_edit_correction_details(self) -> None:
        bob = self.principal(self.bob)
        updated = update_record(
            self.db,
            self.cache,
            principal=bob,
            record_id=self.record.id,
            patch=WelfareRecordPatch(correctionDetails='Fixed typo', amount=Decimal('999')),
        )
        self.assertEqual(updated['correctionDetails'], 'Fixed typo')
        self.assertEqual(updated['amount'], '100.00')

        with self.assertRaises(InvalidInput):
            update_record(
                self.db,
                self.cache,
                principal=bob,
                record_id=self.record.id,
                patch=WelfareRecordPatch(amount=Decimal('999')),
            )

    def test_admin_outside_owner_and_department_cannot_edit_correction_details(self) -> None:
        with self.assertRaises(InvalidInput):
            update_record(
                self.db,
                self.cache,
                principal=self.principal(self.admin),
                record_id=self.record.id,
                patch=WelfareRecordPatch(correctionDetails='admin overwrite'),
            )
        self.assertIsNone(self.reload(WelfareRecord, self.record.id).correction_details)

        finance_admin = self.add_user(self.finance, employee_id='A2', role=UserRole.ADMIN)
        updated = update_record(
            self.db,
            self.cache,
            principal=self.principal(finance_admin),
            record_id=self.record.id,
            patch=WelfareRecordPatch(correctionDetails='Receipt re-attached'),
        )
        self.assertEqual(updated['correctionDetails'], 'Receipt re-attached')

    def test_outsider_is_forbidden(self) -> None:
        with self.assertRaises(Forbidden):
            update_record(
                self.db,
                self.cache,
                principal=self.principal(self.carol),
                record_id=self.record.id,
                patch=WelfareRecordPatch(correctionDetails='x'),
            )

    def test_unchanged_status_is_nothing_to_update(self) -> None:
        with self.assertRaises(InvalidInput):
            update_record(
                self.db,
                self.cache,
                principal=self.principal(self.admin),
                record_id=self.record.id,
                patch=WelfareRecordPatch(status='PENDING'),
            )
        self.assertEqual(self.logs_for(self.record.id), [])

    def test_admin_field_updates_and_cache_refresh(self) -> None:
        admin = self.principal(self.admin)
        get_record(self.db, self.cache, principal=admin, record_id=self.record.id)

        update_record(
            self.db,
            self.cache,
            principal=admin,
            record_id=self.record.id,
            patch=WelfareRecordPatch(amount=Decimal('250'), departmentId=self.sales.id, isCancelled=True),
        )

        detail = get_record(self.db, self.cache, principal=admin, record_id=self.record.id)
        self.assertEqual(detail['amount'], '250.00')
        self.assertEqual(detail['departmentId'], self.sales.id)
        self.assertEqual(detail['department']['name'], 'Sales')
        self.assertTrue(detail['isCancelled'])


class DeleteAndBulkTests(WelfareRecordServiceTestCase, unittest.TestCase):
    def test_delete_is_admin_only_and_not_idempotent(self) -> None:
        record = self.add_record(self.alice, self.medical)
        with self.assertRaises(Forbidden):
            delete_record(self.db, self.cache, principal=self.principal(self.alice), record_id=record.id)

        update_record(
            self.db,
            self.cache,
            principal=self.principal(self.admin),
            record_id=record.id,
            patch=WelfareRecordPatch(status='APPROVED'),
        )
        delete_record(self.db, self.cache, principal=self.principal(self.admin), record_id=record.id)

        self.assertEqual(self.logs_for(record.id), [])
        with self.assertRaises(NotFound):
            delete_record(self.db, self.cache, principal=self.principal(self.admin), record_id=record.id)

    def test_bulk_update_with_missing_id_changes_nothing(self) -> None:
        record = self.add_record(self.alice, self.medical)
        with self.assertRaises(NotFound):
            bulk_update_status(
                self.db,
                self.cache,
                principal=self.principal(self.admin),
                record_ids=[record.id, 9999],
                status=WelfareStatus.APPROVED,
                notes='batch ok',
            )
        self.assertEqual(self.reload(WelfareRecord, record.id).status, WelfareStatus.PENDING)
        self.assertEqual(self.logs_for(record.id), [])

    def test_bulk_update_sets_status_and_logs_each_record(self) -> None:
        first = self.add_record(self.alice, self.medical)
        second = self.add_record(self.carol, self.travel)

        result = bulk_update_status(
            self.db,
            self.cache,
            principal=self.principal(self.admin),
            record_ids=[first.id, second.id, first.id],
            status=WelfareStatus.APPROVED,
            notes='batch ok',
        )

        self.assertEqual(result['count'], 2)
        for record_id in (first.id, second.id):
            self.assertEqual(self.reload(WelfareRecord, record_id).status, WelfareStatus.APPROVED)
            logs = self.logs_for(record_id)
            self.assertEqual(len(logs), 1)
            self.assertEqual(logs[0].notes, 'batch ok')
        self.assertEqual(self.logs_for(first.id)[0].timestamp, self.logs_for(second.id)[0].timestamp)

    def test_bulk_update_invalidates_cached_detail(self) -> None:
        record = self.add_record(self.alice, self.medical)
        admin = self.principal(self.admin)
        self.assertEqual(get_record(self.db, self.cache, principal=admin, record_id=record.id)['status'], 'PENDING')

        bulk_update_status(
            self.db, self.cache, principal=admin, record_ids=[record.id], status=WelfareStatus.REJECTED, notes=None
        )

        self.db.expire_all()
        detail = get_record(self.db, self.cache, principal=admin, record_id=record.id)
        self.assertEqual(detail['status'], 'REJECTED')
        self.assertEqual(detail['statusLogs'][0]['notes'], 'Status changed to REJECTED (bulk update)')

    def test_bulk_update_requires_admin(self) -> None:
        record = self.add_record(self.alice, self.medical)
        with self.assertRaises(Forbidden):
            bulk_update_status(
                self.db,
                self.cache,
                principal=self.principal(self.alice),
                record_ids=[record.id],
                status=WelfareStatus.APPROVED,
                notes=None,
            )


if __name__ == '__main__':
    unittest.main()
