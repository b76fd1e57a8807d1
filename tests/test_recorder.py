"""
Store and scan-pipeline tests against a private in-memory SQLite database
"""
import unittest
from datetime import date
from unittest import mock
from zoneinfo import ZoneInfo

from jornada.core import alerts
from jornada.core.accounting import summarize_day
from jornada.core.classifier import DailyCapPolicy, RotationPolicy
from jornada.core.errors import (
    DayAlreadyComplete, DuplicateEvent, EmployeeNotFound, HistoryQueryFailed, StorageUnavailable,
)
from jornada.core.integrity import event_hash, verify_event
from jornada.core.recorder import AttendanceRecorder
from jornada.core.sessions import reconstruct
from jornada.core.types import EventType
from jornada.db.models import AttendanceEvent, Employee, WorkingDay
from jornada.db.store import AggregateWriter, EventStore

from factories import at, fresh_db, workday

RUT = "11111111-1"
SANTIAGO = ZoneInfo("America/Santiago")


class RecorderTestCase(unittest.TestCase):

    def setUp(self):
        self.db = fresh_db()()
        self.emp = Employee(rut=RUT, full_name="Ana Pérez", weekly_hours_agreed=40)
        self.db.add(self.emp)
        self.db.commit()
        self.recorder = AttendanceRecorder(self.db, policy=RotationPolicy(16), retries=2)

    def tearDown(self):
        self.db.close()

    def scan(self, when, **kw):
        return self.recorder.record_scan(self.emp.id, when.isoformat().replace("+00:00", "Z"), **kw)

    def day_row(self, d):
        return self.db.query(WorkingDay).filter_by(employee_id=self.emp.id, date=d).one()


class TestEventStore(RecorderTestCase):

    def test_append_and_query_in_order(self):
        store = EventStore(self.db)
        for hh, t in ((13, EventType.LUNCH_START), (9, EventType.ENTRY)):
            ts = at(10, hh)
            store.append(self.emp.id, t, ts, ts.isoformat(), "x" * 64)
        punches = store.query_by_employee(self.emp.id)
        self.assertEqual([p.event_type for p in punches], [EventType.ENTRY, EventType.LUNCH_START])
        self.assertEqual(punches[0].timestamp, at(10, 9))
        latest = store.query_by_employee(self.emp.id, limit=1, descending=True)
        self.assertEqual(latest[0].timestamp, at(10, 13))
        self.assertEqual(store.query_by_employee(999), [])

    def test_duplicate_timestamp_rejected(self):
        store = EventStore(self.db)
        store.append(self.emp.id, EventType.ENTRY, at(10, 9), "a", "x" * 64)
        with self.assertRaises(DuplicateEvent):
            store.append(self.emp.id, EventType.LUNCH_START, at(10, 9), "a", "y" * 64)
        self.assertEqual(self.db.query(AttendanceEvent).count(), 1)

    def test_last_entry_before(self):
        store = EventStore(self.db)
        store.append(self.emp.id, EventType.ENTRY, at(10, 9), "a", "h")
        store.append(self.emp.id, EventType.EXIT, at(10, 18), "b", "h")
        store.append(self.emp.id, EventType.ENTRY, at(11, 9), "c", "h")
        self.assertEqual(store.last_entry_before(self.emp.id, at(11, 8)).timestamp, at(10, 9))
        self.assertIsNone(store.last_entry_before(self.emp.id, at(10, 8)))


class TestAggregateWriter(RecorderTestCase):

    def test_upsert_is_idempotent(self):
        summary = summarize_day(reconstruct(workday(10, employee_id=self.emp.id)))
        writer = AggregateWriter(self.db)
        writer.upsert(summary)
        writer.upsert(summary)
        rows = self.db.query(WorkingDay).all()
        self.assertEqual(len(rows), 1)
        self.assertEqual((rows[0].ordinary_minutes, rows[0].overtime_minutes), (480, 0))
        self.assertEqual(writer.working_days(date(2025, 3, 1), date(2025, 3, 31), self.emp.id), rows)


class TestRecordScan(RecorderTestCase):

    def test_full_day_of_scans(self):
        types = [self.scan(at(10, hh)).event_type for hh in (9, 13, 14, 18)]
        self.assertEqual(types, [EventType.ENTRY, EventType.LUNCH_START, EventType.LUNCH_END, EventType.EXIT])
        row = self.day_row(date(2025, 3, 10))
        self.assertEqual((row.lunch_minutes, row.ordinary_minutes, row.overtime_minutes), (60, 480, 0))
        self.assertEqual(row.status, "PRESENT")

    def test_entry_only_day_recorded_with_partial_data(self):
        result = self.scan(at(10, 9))
        self.assertTrue(result.aggregate_synced)
        self.assertEqual(result.session_date, date(2025, 3, 10))
        row = self.day_row(date(2025, 3, 10))
        self.assertIsNotNone(row.actual_entry_time)
        self.assertIsNone(row.actual_exit_time)
        self.assertEqual(row.ordinary_minutes, 0)
        self.assertIn("no exit", row.observations)

    def test_overnight_exit_updates_entry_day(self):
        self.scan(at(10, 22))
        result = self.scan(at(11, 2))   # LUNCH_START
        self.scan(at(11, 3))
        exit_ = self.scan(at(11, 7))
        self.assertEqual(exit_.event_type, EventType.EXIT)
        self.assertEqual(result.session_date, date(2025, 3, 10))
        row = self.day_row(date(2025, 3, 10))
        self.assertEqual(row.ordinary_minutes, 8 * 60)
        self.assertEqual(self.db.query(WorkingDay).count(), 1)

    def test_hash_stored_and_verifiable(self):
        result = self.scan(at(10, 9), lat=-33.45, lng=-70.66)
        ev = result.event
        self.assertEqual(ev.hash, event_hash(RUT, ev.timestamp_raw, -33.45, -70.66))
        self.assertTrue(verify_event(ev, RUT))

    def test_unknown_and_inactive_employee(self):
        with self.assertRaises(EmployeeNotFound):
            self.recorder.record_scan(999, "2025-03-10T09:00:00Z")
        self.emp.active = False
        self.db.commit()
        with self.assertRaises(EmployeeNotFound) as ctx:
            self.scan(at(10, 9))
        self.assertTrue(ctx.exception.inactive)
        self.assertEqual(self.db.query(AttendanceEvent).count(), 0)

    def test_double_tap_is_duplicate(self):
        self.scan(at(10, 9))
        with self.assertRaises(DuplicateEvent):
            self.scan(at(10, 9))
        self.assertEqual(self.db.query(AttendanceEvent).count(), 1)

    def test_history_failure_writes_nothing(self):
        with mock.patch.object(EventStore, "query_by_employee", side_effect=StorageUnavailable("down")):
            with self.assertRaises(HistoryQueryFailed):
                self.scan(at(10, 9))
        self.assertEqual(self.db.query(AttendanceEvent).count(), 0)

    def test_aggregate_failure_keeps_event(self):
        with mock.patch.object(AggregateWriter, "upsert", side_effect=StorageUnavailable("locked")) as upsert:
            result = self.scan(at(10, 9))
        self.assertFalse(result.aggregate_synced)
        self.assertEqual(upsert.call_count, 2)
        self.assertEqual(self.db.query(AttendanceEvent).count(), 1)
        self.assertEqual(self.db.query(WorkingDay).count(), 0)
        # reconciliation later rebuilds the row
        rows = self.recorder.recalculate_employee(self.emp.id)
        self.assertEqual([r.date for r in rows], [date(2025, 3, 10)])

    def test_daily_cap_policy_rejects_fifth_mark(self):
        self.recorder.policy = DailyCapPolicy(4)
        for hh in (9, 13, 14, 18):
            self.scan(at(10, hh))
        with self.assertRaises(DayAlreadyComplete) as ctx:
            self.scan(at(10, 19))
        self.assertEqual(ctx.exception.marks, 4)
        self.assertEqual(self.db.query(AttendanceEvent).count(), 4)


class TestRecalculate(RecorderTestCase):

    def test_windowed_day_matches_full_history(self):
        # a week with a forgotten exit and an abandoned lunch mark in the middle
        plan = [(10, (9, 13, 14, 18)), (11, (9,)), (12, (9, 13, 14, 18)), (13, (8, 12)), (14, (9, 13, 14, 19))]
        for day, hours in plan:
            for hh in hours:
                self.scan(at(day, hh))
        windowed = {
            (r.date, r.lunch_minutes, r.ordinary_minutes, r.overtime_minutes, r.observations)
            for r in self.db.query(WorkingDay).all()
        }
        self.recorder.recalculate_employee(self.emp.id)
        full = {
            (r.date, r.lunch_minutes, r.ordinary_minutes, r.overtime_minutes, r.observations)
            for r in self.db.query(WorkingDay).all()
        }
        self.assertEqual(windowed, full)
        self.assertEqual(len(full), 5)

    def test_recalculate_twice_same_rows(self):
        for hh in (9, 13, 14, 18):
            self.scan(at(10, hh))
        first = [(r.date, r.ordinary_minutes) for r in self.recorder.recalculate_employee(self.emp.id)]
        second = [(r.date, r.ordinary_minutes) for r in self.recorder.recalculate_employee(self.emp.id)]
        self.assertEqual(first, second)
        self.assertEqual(self.db.query(WorkingDay).count(), 1)

    def test_day_without_sessions_untouched(self):
        self.assertIsNone(self.recorder.recalculate_day(self.emp.id, date(2025, 3, 10)))


class TestCurrentSession(RecorderTestCase):

    def test_forgotten_exit_not_flagged_after_new_entry(self):
        self.scan(at(10, 8))
        self.scan(at(11, 8))
        sessions = self.recorder.recent_sessions(self.emp.id, at(11, 10))
        self.assertEqual(alerts.excessive_hours(sessions, at(11, 10), threshold_minutes=600), [])

    def test_night_shift_started_yesterday_is_current(self):
        self.scan(at(10, 22))
        current = self.recorder.current_session(self.emp.id, at(11, 2))
        self.assertIsNotNone(current)
        self.assertEqual(current.date, date(2025, 3, 10))
        self.assertTrue(current.is_open)

    def test_closed_session_of_today_is_current(self):
        for hh in (9, 13, 14, 18):
            self.scan(at(10, hh))
        self.assertTrue(self.recorder.current_session(self.emp.id, at(10, 20)).is_complete)
        self.assertIsNone(self.recorder.current_session(self.emp.id, at(11, 8)))

    def test_stale_open_session_is_not_current(self):
        self.scan(at(10, 8))
        self.assertIsNone(self.recorder.current_session(self.emp.id, at(11, 8)))


class TestSantiagoLocalDays(RecorderTestCase):
    """Working days cut at local midnight in America/Santiago (UTC-3 in March 2025)"""

    def setUp(self):
        super().setUp()
        patcher = mock.patch("jornada.utils.timeutils.local_zone", return_value=SANTIAGO)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_night_shift_anchors_on_local_entry_date(self):
        # local 22:00 on the 10th to 06:00 on the 11th
        for hh in (1, 5, 6, 9):
            self.scan(at(11, hh))
        row = self.day_row(date(2025, 3, 10))
        self.assertEqual((row.lunch_minutes, row.ordinary_minutes), (60, 7 * 60))
        self.assertEqual(self.db.query(WorkingDay).count(), 1)
        self.assertEqual(len(self.recorder.sessions_for_day(self.emp.id, date(2025, 3, 10))), 1)
        self.assertEqual(self.recorder.sessions_for_day(self.emp.id, date(2025, 3, 11)), [])

    def test_daily_cap_counts_local_day(self):
        self.recorder.policy = DailyCapPolicy(4)
        for hh in (12, 16, 17, 21):
            self.scan(at(10, hh))
        # 23:30 local on the 10th, already the 11th in UTC
        with self.assertRaises(DayAlreadyComplete):
            self.scan(at(11, 2, 30))
        self.assertEqual(self.scan(at(11, 4)).event_type, EventType.ENTRY)


if __name__ == "__main__":
    unittest.main()
