import uuid

import pytest

from broadcasts import services, states
from broadcasts.exceptions import InvalidScope, InvalidState, NotFound, ValidationError
from broadcasts.models import Broadcast, SCOPE_ALL_PARENTS, SCOPE_CLASS_PARENTS
from broadcasts.recipients import Scope

pytestmark = pytest.mark.django_db


def test_empty_body_is_rejected(tenant):
    with pytest.raises(ValidationError):
        services.create_broadcast(tenant.id, body="   ", scope=SCOPE_ALL_PARENTS)
    assert Broadcast.objects.count() == 0


def test_scope_is_required(tenant):
    with pytest.raises(ValidationError):
        services.create_broadcast(tenant.id, body="hello", scope=None)


def test_class_scope_needs_classes(tenant):
    with pytest.raises(InvalidScope):
        services.create_broadcast(tenant.id, body="hello", scope=SCOPE_CLASS_PARENTS, target_class_ids=[])


def test_class_of_another_school_is_rejected(tenant, other_tenant, make_class):
    foreign = make_class("6-A", t=other_tenant)
    with pytest.raises(ValidationError):
        services.create_broadcast(tenant.id, body="hello", scope=SCOPE_CLASS_PARENTS, target_class_ids=[foreign.id])
    assert Broadcast.objects.count() == 0


def test_too_many_extra_messages(tenant):
    with pytest.raises(ValidationError):
        services.create_broadcast(tenant.id, body="hello", scope=SCOPE_ALL_PARENTS, extra_messages=["a", "b", "c", "d", "e"])


def test_unknown_tenant(db):
    with pytest.raises(NotFound):
        services.create_broadcast(uuid.uuid4(), body="hello", scope=SCOPE_ALL_PARENTS)


def test_create_draft(tenant, make_class):
    school_class = make_class("6-B")
    b = services.create_broadcast(
        tenant.id, body="Field trip on {{date}}", subject="Field trip",
        scope=SCOPE_CLASS_PARENTS, target_class_ids=[str(school_class.id), str(school_class.id)],
        extra_messages=[{"type": "sticker", "packageId": "446", "stickerId": "1988"}],
        created_by_id=7,
    )
    assert b.status == states.DRAFT
    assert b.target_class_ids == [str(school_class.id)]
    assert b.extra_messages == [{"type": "sticker", "packageId": "446", "stickerId": "1988"}]
    assert b.created_by_id == "7"


def test_send_immediately_dispatches_after_commit(tenant, credentials, school, django_capture_on_commit_callbacks):
    with django_capture_on_commit_callbacks(execute=True) as callbacks:
        b = services.create_broadcast(tenant.id, body="hello", scope=SCOPE_ALL_PARENTS, send_immediately=True)
    assert len(callbacks) == 1
    assert services.get_broadcast_status(tenant.id, b.id) == {
        "status": states.SENT, "total_recipients": 117, "sent_count": 117, "failed_count": 0,
    }


def test_send_draft_once(tenant, credentials, school, django_capture_on_commit_callbacks):
    b = services.create_broadcast(tenant.id, body="hello", scope=SCOPE_ALL_PARENTS)
    with django_capture_on_commit_callbacks(execute=True):
        services.send_broadcast(tenant.id, b.id)
    b.refresh_from_db()
    assert b.status == states.SENT

    with pytest.raises(InvalidState):
        services.send_broadcast(tenant.id, b.id)


def test_send_without_credentials_fails(tenant, school, django_capture_on_commit_callbacks):
    b = services.create_broadcast(tenant.id, body="hello", scope=SCOPE_ALL_PARENTS)
    with django_capture_on_commit_callbacks(execute=True):
        services.send_broadcast(tenant.id, b.id)
    status = services.get_broadcast_status(tenant.id, b.id)
    assert status["status"] == states.FAILED
    assert status["total_recipients"] == 0


def test_lookups_are_tenant_scoped(tenant, other_tenant):
    b = services.create_broadcast(tenant.id, body="hello", scope=SCOPE_ALL_PARENTS)
    with pytest.raises(NotFound):
        services.get_broadcast_status(other_tenant.id, b.id)
    with pytest.raises(NotFound):
        services.send_broadcast(other_tenant.id, b.id)
    with pytest.raises(NotFound):
        services.get_broadcast_status(tenant.id, "not-a-uuid")


def test_delivery_records_are_paged(tenant, credentials, school, django_capture_on_commit_callbacks):
    with django_capture_on_commit_callbacks(execute=True):
        b = services.create_broadcast(tenant.id, body="hello", scope=SCOPE_ALL_PARENTS, send_immediately=True)

    first = services.list_delivery_records(tenant.id, b.id, page=1, page_size=100)
    second = services.list_delivery_records(tenant.id, b.id, page=2, page_size=100)
    assert len(first) == 100 and len(second) == 17
    ids = [r.recipient_id for r in first + second]
    assert ids == sorted(ids)
    assert len(set(ids)) == 117

    with pytest.raises(ValidationError):
        services.list_delivery_records(tenant.id, b.id, page=0)


def test_only_drafts_can_be_deleted(tenant, credentials, django_capture_on_commit_callbacks):
    draft = services.create_broadcast(tenant.id, body="hello", scope=SCOPE_ALL_PARENTS)
    services.delete_broadcast(tenant.id, draft.id)
    assert not Broadcast.objects.filter(pk=draft.pk).exists()

    with django_capture_on_commit_callbacks(execute=True):
        sent = services.create_broadcast(tenant.id, body="hello", scope=SCOPE_ALL_PARENTS, send_immediately=True)
    with pytest.raises(InvalidState):
        services.delete_broadcast(tenant.id, sent.id)


def test_preview(tenant, school):
    class_a = school["classes"][0]
    preview = services.preview_recipients(tenant.id, Scope.classes([class_a.id]))
    assert preview["count"] == 59
    first = preview["recipients"][0]
    assert first["name"].startswith("Tanaka")
    assert first["line_display_name"] is None
    assert len(first["students"]) == 1 and first["students"][0].startswith("Tanaka")


def test_preview_lists_every_linked_student(tenant, make_class, make_guardian):
    from roster.models import GuardianStudent, Student

    guardian = make_guardian(make_class("6-C"))
    guardian.line_display_name = "Mama Tanaka"
    guardian.save()
    sibling = Student.objects.create(tenant=tenant, first_name="Hana", last_name="Tanaka")
    GuardianStudent.objects.create(tenant=tenant, guardian=guardian, student=sibling)

    preview = services.preview_recipients(tenant.id, Scope.all())
    row = preview["recipients"][0]
    assert row["line_display_name"] == "Mama Tanaka"
    assert "TanakaHana" in row["students"]
    assert len(row["students"]) == 2


def test_list_classes_counts_active_enrollments(tenant, other_tenant, make_class, make_guardian):
    class_b = make_class("1-B")
    class_a = make_class("1-A")
    make_guardian(class_a)
    make_guardian(class_a)
    make_guardian(class_a, enrollment_status="withdrawn")
    make_class("1-A", t=other_tenant)

    assert services.list_classes(tenant.id) == [
        {"id": str(class_a.id), "name": "1-A", "student_count": 2},
        {"id": str(class_b.id), "name": "1-B", "student_count": 0},
    ]
