from django.db import models
from common.models import BaseModel


ENROLLMENT_STATUS = (
    ("active", "Active"),
    ("withdrawn", "Withdrawn"),
    ("graduated", "Graduated"),
)


class SchoolClass(BaseModel):
    tenant = models.ForeignKey("platformapp.Tenant", on_delete=models.CASCADE, related_name="classes")
    name = models.CharField(max_length=120)

    class Meta:
        indexes = [models.Index(fields=["tenant", "name"])]

    def __str__(self):
        return self.name


class Student(BaseModel):
    tenant = models.ForeignKey("platformapp.Tenant", on_delete=models.CASCADE, related_name="students")
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100, blank=True, default="")

    class Meta:
        indexes = [models.Index(fields=["tenant", "last_name"])]

    @property
    def full_name(self):
        # Family name first, the way the school prints it on rosters
        return f"{self.last_name}{self.first_name}"

    def __str__(self):
        return self.full_name


class Enrollment(BaseModel):
    tenant = models.ForeignKey("platformapp.Tenant", on_delete=models.CASCADE, related_name="enrollments")
    student = models.ForeignKey("roster.Student", on_delete=models.CASCADE, related_name="enrollments")
    school_class = models.ForeignKey("roster.SchoolClass", on_delete=models.CASCADE, related_name="enrollments")
    status = models.CharField(max_length=16, choices=ENROLLMENT_STATUS, default="active")

    class Meta:
        unique_together = (("student", "school_class"),)
        indexes = [models.Index(fields=["tenant", "school_class", "status"])]


class Guardian(BaseModel):
    """
    A parent/guardian account. Only guardians who linked the school's LINE
    official account carry a line_user_id and can receive broadcasts.
    """
    tenant = models.ForeignKey("platformapp.Tenant", on_delete=models.CASCADE, related_name="guardians")
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100, blank=True, default="")
    line_user_id = models.CharField(max_length=64, blank=True, null=True)
    line_display_name = models.CharField(max_length=120, blank=True, null=True)
    is_active = models.BooleanField(default=True)

    students = models.ManyToManyField("roster.Student", through="roster.GuardianStudent", related_name="guardians")

    class Meta:
        indexes = [
            models.Index(fields=["tenant", "is_active"]),
            models.Index(fields=["tenant", "line_user_id"]),
        ]

    @property
    def full_name(self):
        return f"{self.last_name}{self.first_name}"

    def __str__(self):
        return self.full_name


class GuardianStudent(BaseModel):
    tenant = models.ForeignKey("platformapp.Tenant", on_delete=models.CASCADE, related_name="guardian_links")
    guardian = models.ForeignKey("roster.Guardian", on_delete=models.CASCADE, related_name="student_links")
    student = models.ForeignKey("roster.Student", on_delete=models.CASCADE, related_name="guardian_links")
    relationship = models.CharField(max_length=32, default="parent")

    class Meta:
        unique_together = (("guardian", "student"),)
