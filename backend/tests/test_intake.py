import pytest

from hoa_portal.errors import UnauthorizedError, ValidationError
from hoa_portal.models.models import AuditRecord, NotificationOutbox, SubmissionStatus
from hoa_portal.services.authorization import Principal


def test_submit_creates_pending_submission(db, services, resident):
    submission = services.intake.submit(
        db, resident, "Litchfield", "Sunset", "Over the marsh", "photos/sunset.jpg"
    )

    assert submission.status == SubmissionStatus.PENDING
    assert submission.owner_id == resident.user_id
    assert submission.category == "Litchfield"
    assert submission.rejection_reason is None
    assert submission.created_at is not None


def test_submit_has_no_side_effects(db, services, resident, transport, search_client):
    services.intake.submit(db, resident, "beach", "Dunes", None, "photos/dunes.jpg")

    assert db.query(AuditRecord).count() == 0
    assert db.query(NotificationOutbox).count() == 0
    assert services.worker.drain() == []
    assert transport.calls == []
    assert search_client.stored == []


def test_category_match_is_case_insensitive(db, services, resident):
    submission = services.intake.submit(
        db, resident, "  BEACH ", "Dunes", None, "photos/dunes.jpg"
    )
    assert submission.category == "beach"


@pytest.mark.parametrize(
    "category,title,media_ref",
    [
        ("beach", "", "photos/a.jpg"),
        ("beach", "   ", "photos/a.jpg"),
        ("beach", None, "photos/a.jpg"),
        ("beach", "Dunes", ""),
        ("beach", "Dunes", None),
        ("skyscrapers", "Dunes", "photos/a.jpg"),
        (None, "Dunes", "photos/a.jpg"),
        ("beach", "x" * 201, "photos/a.jpg"),
    ],
)
def test_submit_rejects_invalid_input(db, services, resident, category, title, media_ref):
    with pytest.raises(ValidationError):
        services.intake.submit(db, resident, category, title, None, media_ref)


def test_submit_requires_identity(db, services):
    with pytest.raises(UnauthorizedError):
        services.intake.submit(db, None, "beach", "Dunes", None, "photos/a.jpg")


def test_submit_requires_known_user(db, services):
    stranger = Principal(user_id="ghost", email="ghost@example.com")
    with pytest.raises(UnauthorizedError):
        services.intake.submit(db, stranger, "beach", "Dunes", None, "photos/a.jpg")


def test_list_for_owner_only_returns_own(db, services, resident, other_resident, pending):
    first = pending("First")
    second = pending("Second")
    services.intake.submit(db, other_resident, "beach", "Theirs", None, "photos/t.jpg")

    mine = services.intake.list_for_owner(db, resident)

    assert [s.id for s in mine] == [second.id, first.id]
