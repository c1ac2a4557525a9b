# backend/conftest.py
import threading
import time

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from broadcasts.clients import PushClient
from broadcasts.exceptions import BatchSendError
from platformapp.models import Tenant, ProviderCredential
from roster.models import SchoolClass, Student, Enrollment, Guardian, GuardianStudent


class FakePushClient(PushClient):
    """
    Records every multicast call. Calls listed in `fail_calls` (0-based, in
    call order) or touching a destination in `fail_destinations` raise.
    """

    def __init__(self, fail_calls=(), fail_destinations=(), reason="The request body has 1 error(s) (HTTP 400)", delay=0.0):
        self.calls = []
        self.fail_calls = set(fail_calls)
        self.fail_destinations = set(fail_destinations)
        self.reason = reason
        self.delay = delay
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def send_batch(self, auth, destination_ids, messages):
        with self._lock:
            index = len(self.calls)
            self.calls.append({"to": list(destination_ids), "messages": [m.to_payload() for m in messages]})
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            if index in self.fail_calls or self.fail_destinations.intersection(destination_ids):
                raise BatchSendError(self.reason, status_code=400)
        finally:
            with self._lock:
                self.active -= 1

    def get_bot_info(self, auth):
        return {"displayName": "Test School Bot", "userId": "Ubot", "pictureUrl": "https://example.com/bot.png"}


@pytest.fixture
def tenant(db):
    return Tenant.objects.create(slug="sakura", name="Sakura Elementary")


@pytest.fixture
def other_tenant(db):
    return Tenant.objects.create(slug="momiji", name="Momiji Junior High")


@pytest.fixture
def credentials(tenant):
    return ProviderCredential.objects.create(
        tenant=tenant, provider="line", channel_id="1650000000", channel_secret="s3cret", access_token="tok-sakura",
    )


@pytest.fixture
def make_class(tenant):
    def _make(name, t=None):
        return SchoolClass.objects.create(tenant=t or tenant, name=name)
    return _make


@pytest.fixture
def make_guardian(tenant):
    """
    One guardian linked to one student enrolled in `school_class`.
    `line_user_id=None` makes the guardian unreachable.
    """
    counter = {"n": 0}

    def _make(school_class=None, line_user_id="auto", t=None, is_active=True, enrollment_status="active"):
        t = t or tenant
        counter["n"] += 1
        n = counter["n"]
        if line_user_id == "auto":
            line_user_id = f"U{n:032x}"
        student = Student.objects.create(tenant=t, first_name=f"Student{n}", last_name="Tanaka")
        if school_class is not None:
            Enrollment.objects.create(tenant=t, student=student, school_class=school_class, status=enrollment_status)
        guardian = Guardian.objects.create(
            tenant=t, first_name=f"Parent{n}", last_name="Tanaka",
            line_user_id=line_user_id, is_active=is_active,
        )
        GuardianStudent.objects.create(tenant=t, guardian=guardian, student=student)
        return guardian
    return _make


@pytest.fixture
def school(make_class, make_guardian):
    """Two classes, 120 guardians, 3 of them without a LINE user id."""
    class_a = make_class("1-A")
    class_b = make_class("1-B")
    guardians = []
    for i in range(120):
        school_class = class_a if i % 2 == 0 else class_b
        guardians.append(make_guardian(school_class, line_user_id=None if i in (5, 60, 119) else "auto"))
    return {"classes": [class_a, class_b], "guardians": guardians}


@pytest.fixture
def push_client():
    return FakePushClient()


@pytest.fixture
def user(db):
    return get_user_model().objects.create_user(username="office", password="pw-123456")


@pytest.fixture
def api_client(user, tenant):
    client = APIClient()
    client.force_authenticate(user=user)
    client.credentials(HTTP_X_TENANT_ID=str(tenant.id))
    return client
