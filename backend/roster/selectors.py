from typing import Iterable, Optional
from django.db.models import Count, Prefetch, Q, QuerySet

from .models import Guardian, GuardianStudent, SchoolClass


def guardians_for_scope(tenant_id, class_ids: Optional[Iterable] = None) -> QuerySet:
    """
    Active guardians of a school, optionally narrowed to guardians of students
    with an active enrollment in one of `class_ids`. Linked students are
    prefetched (ordered by student id) on `linked_students`.
    """
    qs = Guardian.objects.filter(tenant_id=tenant_id, is_active=True)
    if class_ids is not None:
        qs = qs.filter(
            student_links__tenant_id=tenant_id,
            student_links__student__enrollments__school_class_id__in=list(class_ids),
            student_links__student__enrollments__status="active",
        )
    links = GuardianStudent.objects.filter(tenant_id=tenant_id).select_related("student").order_by("student_id")
    return qs.distinct().order_by("id").prefetch_related(Prefetch("student_links", queryset=links, to_attr="linked_students"))


def classes_with_student_counts(tenant_id) -> QuerySet:
    """A school's classes by name, annotated with `student_count` (active enrollments only)."""
    return (
        SchoolClass.objects.filter(tenant_id=tenant_id)
        .annotate(student_count=Count("enrollments", filter=Q(enrollments__status="active")))
        .order_by("name")
    )
