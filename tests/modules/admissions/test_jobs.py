"""
Unit tests for the admission event relay job.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from admission_api.core.config import settings
from admission_api.modules.admissions import repository as real_repository
from admission_api.modules.admissions.jobs import (
    EVENT_SENDERS,
    JOB_ID_DISPATCH_EVENTS,
    dispatch_admission_events,
    register_admission_jobs,
)
from admission_api.modules.admissions.models import AdmissionEvent, AdmissionEventType

JOBS = "admission_api.modules.admissions.jobs"


def make_session_maker(session):
    """async_session_maker() replacement yielding the given session."""
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=session)
    context.__aexit__ = AsyncMock(return_value=False)
    return MagicMock(return_value=context)


@pytest.fixture
def relay(mock_db, sample_student, sample_course):
    """Patch the job's collaborators; every sender succeeds by default."""
    sender = AsyncMock(return_value=True)
    senders = {event_type: sender for event_type in AdmissionEventType}
    with (
        patch(f"{JOBS}.async_session_maker", make_session_maker(mock_db)),
        patch(f"{JOBS}.repository") as mock_repo,
        patch(f"{JOBS}.StudentRepository") as mock_students,
        patch(f"{JOBS}.CourseRepository") as mock_courses,
        patch.dict(f"{JOBS}.EVENT_SENDERS", senders),
    ):
        mock_repo.get_undispatched_events = AsyncMock(return_value=[])
        mock_repo.mark_event_dispatched = AsyncMock()
        mock_repo.record_event_failure = AsyncMock(return_value=1)
        mock_students.get_many = AsyncMock(return_value={sample_student.id: sample_student})
        mock_courses.get_many = AsyncMock(return_value={sample_course.id: sample_course})
        mock_repo.sender = sender
        yield mock_repo


def make_event(event_type, student_id, course_id, payload=None):
    event = MagicMock(spec=AdmissionEvent)
    event.id = uuid4()
    event.event_type = event_type
    event.application_id = uuid4()
    event.student_id = student_id
    event.course_id = course_id
    event.payload = payload or {}
    event.dispatched_at = None
    event.attempts = 0
    event.last_error = None
    return event


class TestDispatchAdmissionEvents:
    """Tests for dispatch_admission_events."""

    @pytest.mark.asyncio
    async def test_no_events(self, relay, mock_db):
        result = await dispatch_admission_events()

        assert result["dispatched"] == 0
        assert result["failed"] == 0
        relay.sender.assert_not_awaited()
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_sends_and_marks_events(self, relay, mock_db, sample_event, sample_student):
        relay.get_undispatched_events.return_value = [sample_event]

        result = await dispatch_admission_events()

        assert result["dispatched"] == 1
        assert result["results"] == [{"event_id": str(sample_event.id), "status": "sent"}]
        relay.sender.assert_awaited_once_with(
            sample_student.email,
            sample_student.full_name,
            "Computer Science",
            "Application received: Computer Science",
        )
        relay.mark_event_dispatched.assert_awaited_once_with(mock_db, sample_event)
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_send_stays_undispatched(
        self, relay, mock_db, sample_event, sample_student, sample_course
    ):
        second = make_event(
            AdmissionEventType.OFFER_ACCEPTED, sample_student.id, sample_course.id
        )
        relay.get_undispatched_events.return_value = [sample_event, second]
        relay.sender.side_effect = [False, True]

        result = await dispatch_admission_events()

        assert result["failed"] == 1
        assert result["dispatched"] == 1
        relay.mark_event_dispatched.assert_awaited_once_with(mock_db, second)
        relay.record_event_failure.assert_awaited_once_with(
            mock_db, sample_event, "email provider did not accept the message"
        )
        assert result["dead_lettered"] == 0

    @pytest.mark.asyncio
    async def test_sender_exception_does_not_stop_batch(
        self, relay, mock_db, sample_event, sample_student, sample_course
    ):
        second = make_event(
            AdmissionEventType.WAITLIST_PROMOTED, sample_student.id, sample_course.id
        )
        relay.get_undispatched_events.return_value = [sample_event, second]
        relay.sender.side_effect = [RuntimeError("smtp down"), True]

        result = await dispatch_admission_events()

        assert [r["status"] for r in result["results"]] == ["failed", "sent"]
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_student_is_skipped_and_marked(self, relay, mock_db, sample_course):
        orphan = make_event(AdmissionEventType.APPLICATION_DECIDED, uuid4(), sample_course.id)
        relay.get_undispatched_events.return_value = [orphan]

        result = await dispatch_admission_events()

        assert result["results"][0]["status"] == "skipped"
        relay.sender.assert_not_awaited()
        relay.mark_event_dispatched.assert_awaited_once_with(mock_db, orphan)

    @pytest.mark.asyncio
    async def test_course_name_falls_back_to_payload(self, relay, sample_student):
        event = make_event(
            AdmissionEventType.OFFER_CASCADE_DECLINED,
            sample_student.id,
            uuid4(),
            payload={"course_name": "Archived Course"},
        )
        relay.get_undispatched_events.return_value = [event]

        await dispatch_admission_events()

        assert relay.sender.await_args.args[2] == "Archived Course"

    @pytest.mark.asyncio
    async def test_database_error_rolls_back(self, relay, mock_db, sample_event):
        relay.get_undispatched_events.return_value = [sample_event]
        relay.mark_event_dispatched.side_effect = RuntimeError("connection lost")

        with pytest.raises(RuntimeError):
            await dispatch_admission_events()

        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sender_exception_is_recorded_on_the_event(
        self, relay, mock_db, sample_event
    ):
        relay.get_undispatched_events.return_value = [sample_event]
        relay.sender.side_effect = RuntimeError("smtp down")

        await dispatch_admission_events()

        relay.record_event_failure.assert_awaited_once_with(
            mock_db, sample_event, "RuntimeError: smtp down"
        )
        relay.mark_event_dispatched.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_event_reaching_attempt_limit_is_dead_lettered(
        self, relay, mock_db, sample_event
    ):
        relay.get_undispatched_events.return_value = [sample_event]
        relay.sender.return_value = False
        relay.record_event_failure.return_value = settings.event_dispatch_max_attempts

        result = await dispatch_admission_events()

        assert result["failed"] == 1
        assert result["dead_lettered"] == 1
        relay.mark_event_dispatched.assert_not_awaited()
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_batch_is_claimed_with_configured_limits(self, relay, mock_db):
        await dispatch_admission_events()

        relay.get_undispatched_events.assert_awaited_once_with(
            mock_db,
            settings.event_dispatch_batch_size,
            settings.event_dispatch_max_attempts,
        )


class InMemoryOutbox:
    """Mirrors the relay queries of the repository over a list of events."""

    def __init__(self, events):
        self.events = events

    async def get_undispatched_events(self, db, limit, max_attempts):
        waiting = [
            e for e in self.events if e.dispatched_at is None and e.attempts < max_attempts
        ]
        waiting.sort(key=lambda e: (e.attempts, e.created_at))
        return waiting[:limit]

    async def mark_event_dispatched(self, db, event):
        return await real_repository.mark_event_dispatched(db, event)

    async def record_event_failure(self, db, event, error):
        return await real_repository.record_event_failure(db, event, error)


class TestFailingEventsDoNotBlockTheOutbox:
    """Events that always fail must not starve the ones queued behind them."""

    @pytest.fixture
    def outbox(self, mock_db, sample_course):
        good_student = MagicMock(email="good@test.com", full_name="Good Student")
        bad_student = MagicMock(email="bounce@test.com", full_name="Bad Address")
        good_student.id, bad_student.id = uuid4(), uuid4()

        start = datetime(2026, 1, 1, tzinfo=UTC)

        def event(student, minutes):
            return AdmissionEvent(
                id=uuid4(),
                event_type=AdmissionEventType.OFFER_ACCEPTED,
                application_id=uuid4(),
                student_id=student.id,
                course_id=sample_course.id,
                payload={},
                created_at=start + timedelta(minutes=minutes),
                dispatched_at=None,
                attempts=0,
            )

        events = [event(bad_student, 0), event(bad_student, 1), event(good_student, 2)]
        fake = InMemoryOutbox(events)

        async def send(email, name, course_name, subject):
            return email != bad_student.email

        limits = MagicMock(event_dispatch_batch_size=2, event_dispatch_max_attempts=3)
        with (
            patch(f"{JOBS}.async_session_maker", make_session_maker(mock_db)),
            patch(f"{JOBS}.repository", fake),
            patch(f"{JOBS}.settings", limits),
            patch(f"{JOBS}.StudentRepository") as mock_students,
            patch(f"{JOBS}.CourseRepository") as mock_courses,
            patch.dict(f"{JOBS}.EVENT_SENDERS", {t: send for t in AdmissionEventType}),
        ):
            mock_students.get_many = AsyncMock(
                return_value={good_student.id: good_student, bad_student.id: bad_student}
            )
            mock_courses.get_many = AsyncMock(return_value={sample_course.id: sample_course})
            yield events

    @pytest.mark.asyncio
    async def test_later_event_is_delivered_despite_failing_head(self, outbox):
        bad_first, bad_second, good = outbox

        await dispatch_admission_events()
        assert good.dispatched_at is None
        assert (bad_first.attempts, bad_second.attempts) == (1, 1)

        await dispatch_admission_events()

        assert good.dispatched_at is not None

    @pytest.mark.asyncio
    async def test_failing_events_stop_being_retried_at_the_limit(self, outbox):
        bad_first, bad_second, good = outbox

        summaries = [await dispatch_admission_events() for _ in range(6)]

        assert good.dispatched_at is not None
        assert bad_first.attempts == bad_second.attempts == 3
        assert bad_first.dispatched_at is None
        assert bad_first.last_error == "email provider did not accept the message"
        assert sum(s["dead_lettered"] for s in summaries) == 2
        assert summaries[-1]["results"] == []


def test_every_event_type_has_a_sender():
    for event_type in AdmissionEventType:
        assert event_type in EVENT_SENDERS


def test_register_admission_jobs():
    with patch(f"{JOBS}.register_job") as mock_register:
        register_admission_jobs()

    mock_register.assert_called_once()
    assert mock_register.call_args.kwargs["job_id"] == JOB_ID_DISPATCH_EVENTS
    assert mock_register.call_args.kwargs["func"] is dispatch_admission_events
