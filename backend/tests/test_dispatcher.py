import pytest
from sqlalchemy.exc import OperationalError

from hoa_portal.errors import PermanentFailure, TransientFailure
from hoa_portal.models.models import AuditKind, AuditRecord
from hoa_portal.notifications.dispatcher import (
    DispatchStatus,
    NotificationDispatcher,
    RetryPolicy,
)
from hoa_portal.notifications.jobs import NotificationJob, TemplateKind, idempotency_key


def make_job(recipient="resident@example.com", submission_id="s-1"):
    return NotificationJob(
        idempotency_key=idempotency_key(submission_id, "rejected", recipient),
        submission_id=submission_id,
        recipient=recipient,
        kind=TemplateKind.REJECTION,
        subject="SPR-HOA: Your photo \"Sunset\" was not approved",
        body_html="<p>Reason: blurry</p>",
    )


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def dispatcher(transport, session_factory, sleeps):
    return NotificationDispatcher(
        transport,
        session_factory,
        retry_policy=RetryPolicy(max_attempts=4, base_delay=1.0, max_delay=3.0, jitter=0),
        sleep=sleeps.append,
    )


def records(db, key, kind=None):
    query = db.query(AuditRecord).filter(AuditRecord.idempotency_key == key)
    if kind:
        query = query.filter(AuditRecord.kind == kind)
    return query.all()


def test_sent_on_first_attempt(db, dispatcher, transport):
    job = make_job()

    outcome = dispatcher.dispatch(job)

    assert outcome.status == DispatchStatus.SENT
    assert outcome.attempts == 1
    assert outcome.message_id == "msg-1"
    sent = records(db, job.idempotency_key, AuditKind.EMAIL_SENT)
    assert len(sent) == 1
    assert sent[0].payload["message_id"] == "msg-1"
    assert sent[0].submission_id == "s-1"


def test_transient_failures_then_success(db, dispatcher, transport, sleeps):
    job = make_job()
    transport.fail_with(
        TransientFailure("HTTP 503", status_code=503),
        TransientFailure("Request timed out after 10.0s"),
    )

    outcome = dispatcher.dispatch(job)

    assert outcome.sent
    assert outcome.attempts == 3
    assert len(transport.calls) == 3
    assert sleeps == [1.0, 2.0]
    assert len(records(db, job.idempotency_key, AuditKind.EMAIL_SENT)) == 1
    assert records(db, job.idempotency_key, AuditKind.EMAIL_ERROR) == []


def test_retries_exhausted(db, dispatcher, transport, sleeps):
    job = make_job()
    transport.fail_with(*[TransientFailure("HTTP 502", status_code=502)] * 4)

    outcome = dispatcher.dispatch(job)

    assert outcome.status == DispatchStatus.PERMANENT_FAILURE
    assert outcome.exhausted
    assert len(transport.calls) == 4
    assert sleeps == [1.0, 2.0, 3.0]
    errors = records(db, job.idempotency_key, AuditKind.EMAIL_ERROR)
    assert len(errors) == 1
    assert errors[0].payload["exhausted"] is True
    assert errors[0].payload["status_code"] == 502
    assert records(db, job.idempotency_key, AuditKind.EMAIL_SENT) == []


def test_permanent_failure_is_not_retried(db, dispatcher, transport, sleeps):
    job = make_job()
    transport.fail_with(PermanentFailure("HTTP 422: invalid `to` field", status_code=422))

    outcome = dispatcher.dispatch(job)

    assert outcome.status == DispatchStatus.PERMANENT_FAILURE
    assert not outcome.exhausted
    assert len(transport.calls) == 1
    assert sleeps == []
    errors = records(db, job.idempotency_key, AuditKind.EMAIL_ERROR)
    assert len(errors) == 1
    assert "invalid" in errors[0].payload["error"]


def test_prior_success_short_circuits(db, dispatcher, transport):
    job = make_job()
    dispatcher.dispatch(job)

    again = dispatcher.dispatch(job)

    assert again.sent and again.duplicate
    assert again.message_id == "msg-1"
    assert len(transport.calls) == 1
    assert len(records(db, job.idempotency_key)) == 1


def test_failed_job_is_not_resurrected(db, dispatcher, transport):
    job = make_job()
    transport.fail_with(PermanentFailure("HTTP 400", status_code=400))
    dispatcher.dispatch(job)

    again = dispatcher.dispatch(job)

    assert again.status == DispatchStatus.PERMANENT_FAILURE and again.duplicate
    assert len(transport.calls) == 1
    assert len(records(db, job.idempotency_key, AuditKind.EMAIL_ERROR)) == 1


def test_attempt_classifies_without_recording(db, dispatcher, transport):
    job = make_job()
    transport.fail_with(TransientFailure("HTTP 500", status_code=500))

    outcome = dispatcher.attempt(job)

    assert outcome.status == DispatchStatus.TRANSIENT_FAILURE
    assert outcome.status_code == 500
    assert records(db, job.idempotency_key) == []


def test_audit_failure_propagates(transport, session_factory, engine):
    dispatcher = NotificationDispatcher(
        transport, session_factory, retry_policy=RetryPolicy(max_attempts=1)
    )
    AuditRecord.__table__.drop(engine)

    with pytest.raises(OperationalError):
        dispatcher.dispatch(make_job())


def test_retry_policy_backoff_is_bounded():
    policy = RetryPolicy(max_attempts=10, base_delay=2.0, max_delay=10.0, jitter=0)

    assert [policy.delay_for(n) for n in range(1, 6)] == [2.0, 4.0, 8.0, 10.0, 10.0]


def test_retry_policy_jitter_stays_in_range():
    policy = RetryPolicy(base_delay=4.0, jitter=0.25)

    for _ in range(50):
        assert 3.0 <= policy.delay_for(1) <= 5.0


def test_retry_policy_requires_an_attempt():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)


def test_unexpected_error_is_recorded_once_without_retry(db, dispatcher, transport, sleeps):
    job = make_job()
    transport.fail_with(AttributeError("'list' object has no attribute 'get'"))

    outcome = dispatcher.dispatch(job)

    assert outcome.status == DispatchStatus.PERMANENT_FAILURE
    assert len(transport.calls) == 1
    assert sleeps == []
    errors = records(db, job.idempotency_key, AuditKind.EMAIL_ERROR)
    assert len(errors) == 1
    assert "AttributeError" in errors[0].payload["error"]


def test_retry_policy_jitter_never_exceeds_cap():
    policy = RetryPolicy(max_attempts=10, base_delay=60.0, max_delay=60.0, jitter=0.5)

    for attempt in range(1, 6):
        assert policy.delay_for(attempt) <= 60.0
