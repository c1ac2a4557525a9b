import pytest

from roster.selectors import guardians_for_scope

pytestmark = pytest.mark.django_db


def test_linked_students_are_prefetched(tenant, make_class, make_guardian, django_assert_num_queries):
    school_class = make_class("1-A")
    for _ in range(3):
        make_guardian(school_class)

    with django_assert_num_queries(2):
        guardians = list(guardians_for_scope(tenant.id))
        names = [g.linked_students[0].student.full_name for g in guardians]
    assert len(names) == 3
    assert all(n.startswith("Tanaka") for n in names)


def test_unscoped_includes_guardians_without_enrollment(tenant, make_guardian):
    make_guardian(None)
    assert guardians_for_scope(tenant.id).count() == 1
    assert guardians_for_scope(tenant.id, class_ids=[]).count() == 0
