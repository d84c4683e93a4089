import unittest
from datetime import timedelta

from sqlalchemy.exc import IntegrityError

from base import DatabaseTestCase, T0

from agent_gateway.core.exceptions import (
    ActiveEntryExists,
    InvalidTimerState,
    ProjectNotFound,
    TimeEntryNotFound,
)
from agent_gateway.models.time_entry import TimeEntry, TimeEntryStatus
from agent_gateway.services.projects import ProjectService
from agent_gateway.services.timer import POLICY_AUTO_STOP, POLICY_REJECT, TimerService, elapsed_ms


class TestElapsed(unittest.TestCase):

    def test_elapsed_floors_to_milliseconds(self):
        self.assertEqual(elapsed_ms(T0, T0 + timedelta(microseconds=1999)), 1)

    def test_elapsed_clamps_at_zero(self):
        self.assertEqual(elapsed_ms(T0 + timedelta(seconds=5), T0), 0)
        self.assertEqual(elapsed_ms(None, T0), 0)

    def test_elapsed_ms(self):
        self.assertEqual(elapsed_ms(T0, T0 + timedelta(minutes=1, milliseconds=5)), 60005)


class TestTimerTransitions(DatabaseTestCase):
    """Start, pause, resume, stop"""

    def setUp(self):
        super().setUp()
        self.timer = TimerService(self.db, policy=POLICY_AUTO_STOP)
        self.project = self.make_project()

    def test_unknown_policy(self):
        with self.assertRaises(ValueError):
            TimerService(self.db, policy="ignore")

    def test_start(self):
        entry, stopped = self.timer.start("u1", self.project.id, "Homepage", now=T0)
        self.assertIsNone(stopped)
        self.assertEqual(entry.status, TimeEntryStatus.RUNNING)
        self.assertEqual(entry.start_time, T0)
        self.assertEqual(entry.last_activity_at, T0)
        self.assertEqual(entry.duration, 0)
        self.assertEqual(entry.description, "Homepage")
        self.assertEqual(self.timer.get_active_entry("u1").id, entry.id)

    def test_start_on_foreign_project(self):
        foreign = self.make_project(owner_id="u2")
        with self.assertRaises(ProjectNotFound):
            self.timer.start("u1", foreign.id, now=T0)
        with self.assertRaises(ProjectNotFound):
            self.timer.start("u1", "missing", now=T0)

    def test_running_time_is_conserved_across_pause(self):
        entry, _ = self.timer.start("u1", self.project.id, now=T0)
        self.timer.pause(entry.id, "u1", now=self.at(600))
        self.timer.resume(entry.id, "u1", now=self.at(900))
        stopped = self.timer.stop(entry.id, "u1", now=self.at(1500))

        self.assertEqual(stopped.status, TimeEntryStatus.STOPPED)
        self.assertEqual(stopped.end_time, self.at(1500))
        self.assertEqual(stopped.duration, 600 + 600)
        self.assertEqual(stopped.idle_time, 300)

    def test_resume_discarding_idle(self):
        entry, _ = self.timer.start("u1", self.project.id, now=T0)
        self.timer.pause(entry.id, "u1", now=self.at(60))
        resumed = self.timer.resume(entry.id, "u1", discard_idle=True, now=self.at(3600))
        self.assertEqual(resumed.idle_time, 0)
        self.assertEqual(resumed.last_activity_at, self.at(3600))
        self.assertEqual(self.timer.stop(entry.id, "u1", now=self.at(3660)).duration, 120)

    def test_stop_from_paused_adds_no_running_time(self):
        entry, _ = self.timer.start("u1", self.project.id, now=T0)
        self.timer.pause(entry.id, "u1", now=self.at(100))
        stopped = self.timer.stop(entry.id, "u1", now=self.at(5000))
        self.assertEqual(stopped.duration, 100)

    def test_pause_requires_running(self):
        entry, _ = self.timer.start("u1", self.project.id, now=T0)
        self.timer.pause(entry.id, "u1", now=self.at(10))
        with self.assertRaises(InvalidTimerState) as ctx:
            self.timer.pause(entry.id, "u1", now=self.at(20))
        self.assertEqual(ctx.exception.extra["current_status"], "paused")
        self.assertEqual(ctx.exception.extra["entry_id"], entry.id)

    def test_resume_requires_paused(self):
        entry, _ = self.timer.start("u1", self.project.id, now=T0)
        with self.assertRaises(InvalidTimerState) as ctx:
            self.timer.resume(entry.id, "u1", now=self.at(10))
        self.assertEqual(ctx.exception.extra["current_status"], "running")

    def test_stopped_is_terminal(self):
        entry, _ = self.timer.start("u1", self.project.id, now=T0)
        self.timer.stop(entry.id, "u1", now=self.at(60))

        for transition in (self.timer.pause, self.timer.resume, self.timer.stop):
            with self.assertRaises(InvalidTimerState):
                transition(entry.id, "u1", now=self.at(120))

        self.db.refresh(entry)
        self.assertEqual(entry.duration, 60)
        self.assertEqual(entry.end_time, self.at(60))
        self.assertIsNone(self.timer.get_active_entry("u1"))

    def test_other_users_entry_is_not_found(self):
        entry, _ = self.timer.start("u1", self.project.id, now=T0)
        with self.assertRaises(TimeEntryNotFound):
            self.timer.pause(entry.id, "u2", now=self.at(10))
        with self.assertRaises(TimeEntryNotFound):
            self.timer.stop("missing", "u1", now=self.at(10))

    def test_touch_only_advances_running_entries(self):
        entry, _ = self.timer.start("u1", self.project.id, now=T0)
        self.assertTrue(self.timer.touch(entry, self.at(30)))
        self.assertEqual(entry.duration, 30)
        self.assertEqual(entry.last_activity_at, self.at(30))

        self.timer.pause(entry.id, "u1", now=self.at(40))
        self.assertFalse(self.timer.touch(entry, self.at(100)))
        self.assertEqual(entry.duration, 40)
        self.assertEqual(entry.last_activity_at, self.at(40))

    def test_sub_second_heartbeats_keep_fractional_time(self):
        entry, _ = self.timer.start("u1", self.project.id, now=T0)
        for i in range(1, 61):
            self.timer.touch(entry, T0 + timedelta(milliseconds=1900 * i))
        self.db.commit()

        stopped = self.timer.stop(entry.id, "u1", now=T0 + timedelta(milliseconds=115900))
        self.assertEqual(stopped.duration_ms, 115900)
        self.assertEqual(stopped.duration, 115)

    def test_fractional_pause_resume_conserves_running_time(self):
        entry, _ = self.timer.start("u1", self.project.id, now=T0)
        self.timer.pause(entry.id, "u1", now=T0 + timedelta(milliseconds=1500))
        self.timer.resume(entry.id, "u1", now=T0 + timedelta(milliseconds=1500))
        stopped = self.timer.stop(entry.id, "u1", now=T0 + timedelta(milliseconds=3000))

        self.assertEqual(stopped.duration_ms, 3000)
        self.assertEqual(stopped.duration, 3)
        self.assertEqual(stopped.idle_time, 0)

    def test_fractional_idle_time_accumulates(self):
        entry, _ = self.timer.start("u1", self.project.id, now=T0)
        self.timer.pause(entry.id, "u1", now=T0 + timedelta(milliseconds=700))
        self.timer.resume(entry.id, "u1", now=T0 + timedelta(milliseconds=2000))
        self.timer.pause(entry.id, "u1", now=T0 + timedelta(milliseconds=2400))
        self.timer.resume(entry.id, "u1", now=T0 + timedelta(milliseconds=3100))
        stopped = self.timer.stop(entry.id, "u1", now=T0 + timedelta(milliseconds=3100))

        self.assertEqual(stopped.idle_ms, 2000)
        self.assertEqual(stopped.idle_time, 2)
        self.assertEqual(stopped.duration_ms, 1100)
        self.assertEqual(stopped.duration, 1)
        # Every millisecond between start and stop is either running or idle
        self.assertEqual(stopped.duration_ms + stopped.idle_ms, 3100)

    def test_touch_with_sub_second_gap_keeps_anchor(self):
        entry, _ = self.timer.start("u1", self.project.id, now=T0)
        self.timer.touch(entry, T0 + timedelta(milliseconds=400))
        self.timer.touch(entry, T0 + timedelta(milliseconds=800))
        self.timer.touch(entry, T0 + timedelta(milliseconds=1200))
        self.assertEqual(entry.duration, 1)
        self.assertEqual(entry.duration_ms, 1200)
        self.assertEqual(entry.last_activity_at, T0 + timedelta(milliseconds=1200))


class TestActiveEntryPolicy(DatabaseTestCase):
    """At most one open entry per user"""

    def setUp(self):
        super().setUp()
        self.project = self.make_project()
        self.other_project = self.make_project(name="Mobile app")

    def test_auto_stop_closes_previous_entry(self):
        timer = TimerService(self.db, policy=POLICY_AUTO_STOP)
        first, _ = timer.start("u1", self.project.id, now=T0)
        second, stopped = timer.start("u1", self.other_project.id, now=self.at(1200))

        self.assertEqual(stopped.id, first.id)
        self.db.refresh(first)
        self.assertEqual(first.status, TimeEntryStatus.STOPPED)
        self.assertEqual(first.duration, 1200)
        self.assertEqual(first.end_time, self.at(1200))
        self.assertEqual(second.status, TimeEntryStatus.RUNNING)

        open_entries = self.db.query(TimeEntry).filter(TimeEntry.status.in_(TimeEntryStatus.OPEN)).all()
        self.assertEqual([e.id for e in open_entries], [second.id])

    def test_auto_stop_closes_paused_entry(self):
        timer = TimerService(self.db, policy=POLICY_AUTO_STOP)
        first, _ = timer.start("u1", self.project.id, now=T0)
        timer.pause(first.id, "u1", now=self.at(300))
        _, stopped = timer.start("u1", self.project.id, now=self.at(900))
        self.assertEqual(stopped.id, first.id)
        self.assertEqual(stopped.duration, 300)

    def test_reject_leaves_existing_entry(self):
        timer = TimerService(self.db, policy=POLICY_REJECT)
        first, _ = timer.start("u1", self.project.id, now=T0)

        with self.assertRaises(ActiveEntryExists) as ctx:
            timer.start("u1", self.other_project.id, now=self.at(60))
        self.assertEqual(ctx.exception.extra["entry_id"], first.id)

        self.db.refresh(first)
        self.assertEqual(first.status, TimeEntryStatus.RUNNING)
        self.assertEqual(self.db.query(TimeEntry).count(), 1)

    def test_users_are_independent(self):
        timer = TimerService(self.db, policy=POLICY_REJECT)
        other = self.make_project(owner_id="u2")
        timer.start("u1", self.project.id, now=T0)
        entry, stopped = timer.start("u2", other.id, now=T0)
        self.assertIsNone(stopped)
        self.assertEqual(entry.user_id, "u2")

    def test_database_rejects_second_open_entry(self):
        for _ in range(2):
            self.db.add(TimeEntry(user_id="u1", project_id=self.project.id,
                                  status=TimeEntryStatus.RUNNING, start_time=T0))
        with self.assertRaises(IntegrityError):
            self.db.commit()
        self.db.rollback()

    def test_database_allows_many_stopped_entries(self):
        for _ in range(3):
            self.db.add(TimeEntry(user_id="u1", project_id=self.project.id,
                                  status=TimeEntryStatus.STOPPED, start_time=T0, end_time=T0))
        self.db.add(TimeEntry(user_id="u1", project_id=self.project.id,
                              status=TimeEntryStatus.PAUSED, start_time=T0))
        self.db.commit()
        self.assertEqual(self.db.query(TimeEntry).count(), 4)


class TestReview(DatabaseTestCase):
    """Review time extends the project's due date"""

    def setUp(self):
        super().setUp()
        self.timer = TimerService(self.db)
        self.projects = ProjectService(self.db, self.timer)
        self.due = T0 + timedelta(days=7)
        self.project = self.projects.create("u1", "Website redesign", due_date=self.due, now=T0)

    def test_review_extends_due_date(self):
        self.projects.set_status(self.project.id, "u1", "in_review", now=self.at(3600))
        project = self.projects.set_status(self.project.id, "u1", "active", now=self.at(3600 + 7200))

        self.assertEqual(project.due_date, self.due + timedelta(hours=2))
        self.assertEqual(project.total_review_ms, 7200 * 1000)
        self.assertIsNone(project.review_started_at)

    def test_review_windows_accumulate(self):
        self.projects.set_status(self.project.id, "u1", "in_review", now=self.at(0))
        self.projects.set_status(self.project.id, "u1", "active", now=self.at(60))
        self.projects.set_status(self.project.id, "u1", "in_review", now=self.at(100))
        project = self.projects.set_status(self.project.id, "u1", "completed", now=self.at(130))

        self.assertEqual(project.total_review_ms, 90 * 1000)
        self.assertEqual(project.due_date, self.due + timedelta(seconds=90))

    def test_repeated_status_is_noop(self):
        self.projects.set_status(self.project.id, "u1", "in_review", now=self.at(0))
        project = self.projects.set_status(self.project.id, "u1", "in_review", now=self.at(500))
        self.assertEqual(project.review_started_at, self.at(0))

    def test_review_without_due_date(self):
        project = self.projects.create("u1", "No deadline", now=T0)
        self.projects.set_status(project.id, "u1", "in_review", now=self.at(0))
        project = self.projects.set_status(project.id, "u1", "active", now=self.at(10))
        self.assertIsNone(project.due_date)
        self.assertEqual(project.total_review_ms, 10000)

    def test_open_entries_track_review(self):
        entry, _ = self.timer.start("u1", self.project.id, now=T0)
        self.projects.set_status(self.project.id, "u1", "in_review", now=self.at(100))
        self.db.refresh(entry)
        self.assertEqual(entry.review_started_at, self.at(100))

        self.projects.set_status(self.project.id, "u1", "active", now=self.at(400))
        self.db.refresh(entry)
        self.assertEqual(entry.total_review_ms, 300 * 1000)
        self.assertIsNone(entry.review_started_at)

    def test_entry_started_during_review_closes_window_on_stop(self):
        self.projects.set_status(self.project.id, "u1", "in_review", now=T0)
        entry, _ = self.timer.start("u1", self.project.id, now=self.at(60))
        self.assertEqual(entry.review_started_at, self.at(60))

        stopped = self.timer.stop(entry.id, "u1", now=self.at(120))
        self.assertEqual(stopped.total_review_ms, 60 * 1000)
        self.assertIsNone(stopped.review_started_at)

    def test_project_created_in_review(self):
        project = self.projects.create("u1", "Audit", status="in_review", now=T0)
        self.assertEqual(project.review_started_at, T0)

    def test_foreign_project_status(self):
        with self.assertRaises(ProjectNotFound):
            self.projects.set_status(self.project.id, "u2", "in_review")


class TestMaintenance(DatabaseTestCase):
    """Stale sweep and stats"""

    def setUp(self):
        super().setUp()
        self.timer = TimerService(self.db)
        self.project = self.make_project()

    def test_sweep_pauses_stale_entries_at_last_activity(self):
        stale, _ = self.timer.start("u1", self.project.id, now=T0)
        self.timer.touch(stale, self.at(120))
        self.db.commit()
        other = self.make_project(owner_id="u2")
        fresh, _ = self.timer.start("u2", other.id, now=self.at(1000))

        swept = self.timer.sweep_stale(900, now=self.at(1200))
        self.assertEqual([e.id for e in swept], [stale.id])

        self.db.refresh(stale)
        self.db.refresh(fresh)
        self.assertEqual(stale.status, TimeEntryStatus.PAUSED)
        self.assertEqual(stale.duration, 120)
        self.assertEqual(fresh.status, TimeEntryStatus.RUNNING)

        resumed = self.timer.resume(stale.id, "u1", now=self.at(1500))
        self.assertEqual(resumed.idle_time, 1380)

    def test_time_stats(self):
        other = self.make_project(name="Mobile app")
        first, _ = self.timer.start("u1", self.project.id, now=T0)
        self.timer.stop(first.id, "u1", now=self.at(600))
        second, _ = self.timer.start("u1", other.id, now=self.at(700))
        self.timer.pause(second.id, "u1", now=self.at(1000))
        self.timer.resume(second.id, "u1", now=self.at(1100))
        self.timer.stop(second.id, "u1", now=self.at(1200))
        # Open entries are not counted
        self.timer.start("u1", self.project.id, now=self.at(2000))

        stats = self.timer.time_stats("u1")
        self.assertEqual(stats["entries_count"], 2)
        self.assertEqual(stats["total_duration"], 600 + 400)
        self.assertEqual(stats["total_idle_time"], 100)
        totals = {row["project_id"]: row["total_duration"] for row in stats["by_project"]}
        self.assertEqual(totals, {self.project.id: 600, other.id: 400})

    def test_time_stats_range(self):
        entry, _ = self.timer.start("u1", self.project.id, now=T0)
        self.timer.stop(entry.id, "u1", now=self.at(60))
        stats = self.timer.time_stats("u1", start=self.at(1))
        self.assertEqual(stats["entries_count"], 0)
        self.assertEqual(stats["by_project"], [])


if __name__ == '__main__':
    unittest.main()
