from django.db import models
from django.db.models import Q
from django.contrib.auth.models import User
from django.utils import timezone

# Create your models here.

# Academic Year Management
class AcademicYear(models.Model):
    year = models.CharField(max_length=20, unique=True)  # e.g., "2023-2024"
    start_date = models.DateField()
    end_date = models.DateField()
    is_current = models.BooleanField(default=False)  # Only one should be current
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-start_date']

    def __str__(self):
        return self.year

# University Structure
class Faculty(models.Model):
    name = models.CharField(max_length=100)
    code = models.CharField(max_length=10, unique=True)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name

class Student(models.Model):
    STATUS_CHOICES = [
        ('Active', 'Active'),
        ('Suspended', 'Suspended'),
        ('Graduated', 'Graduated'),
        ('Withdrawn', 'Withdrawn'),
    ]

    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    student_id = models.CharField(max_length=20, unique=True)  # External matricule
    email = models.EmailField(blank=True)
    status = models.CharField(max_length=15, choices=STATUS_CHOICES, default='Active')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.student_id} - {self.get_full_name()}"

    def get_full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

# Teaching unit (course)
class UE(models.Model):
    TYPE_CHOICES = [
        ('Mandatory', 'Mandatory'),
        ('Elective', 'Elective'),
    ]

    code = models.CharField(max_length=20, unique=True)  # INF101, MTH201, etc.
    title = models.CharField(max_length=200)
    credits = models.PositiveIntegerField()
    ue_type = models.CharField(max_length=10, choices=TYPE_CHOICES, default='Mandatory')
    passing_grade = models.DecimalField(max_digits=5, decimal_places=2, default=60)  # 0-100 scale
    faculty = models.ForeignKey(Faculty, on_delete=models.SET_NULL, null=True, blank=True, related_name='ues')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'UE'
        verbose_name_plural = 'UEs'

    def __str__(self):
        return f"{self.code} - {self.title}"

# Student enrollment in a faculty/level for one academic year
class Enrollment(models.Model):
    STATUS_ACTIVE = 'Active'
    STATUS_COMPLETED = 'Completed'
    STATUS_CANCELLED = 'Cancelled'
    STATUS_SUSPENDED = 'Suspended'

    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
        (STATUS_SUSPENDED, 'Suspended'),
    ]

    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name='enrollments')
    faculty = models.ForeignKey(Faculty, on_delete=models.CASCADE, related_name='enrollments')
    level = models.CharField(max_length=10)  # "1", "2", "3", ...
    academic_year = models.ForeignKey(AcademicYear, on_delete=models.CASCADE, related_name='enrollments')
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    enrollment_date = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ['student', 'faculty', 'level', 'academic_year']
        ordering = ['-enrollment_date']

    def __str__(self):
        return f"{self.student.student_id} - {self.faculty.name} L{self.level} ({self.academic_year.year})"

    def to_summary(self):
        """Short description used in conflict payloads and audit metadata"""
        return {
            'id': self.id,
            'faculty': self.faculty.name,
            'level': self.level,
            'academicYear': self.academic_year.year,
            'status': self.status,
        }

# Grade ledger: one row per attempt, one active row per (student, ue, year, semester)
class Grade(models.Model):
    STATUS_VALID = 'Valid'
    STATUS_RETAKE = 'Retake'
    STATUS_NON_VALID = 'NonValid'

    STATUS_CHOICES = [
        (STATUS_VALID, 'Valid'),
        (STATUS_RETAKE, 'Retake'),
        (STATUS_NON_VALID, 'Non valid'),
    ]

    SESSION_NORMAL = 'Normal'
    SESSION_RETAKE = 'Retake'

    SESSION_CHOICES = [
        (SESSION_NORMAL, 'Normal'),
        (SESSION_RETAKE, 'Retake'),
    ]

    SEMESTER_CHOICES = [
        ('S1', 'Semester 1'),
        ('S2', 'Semester 2'),
    ]

    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name='grades')
    ue = models.ForeignKey(UE, on_delete=models.CASCADE, related_name='grades')
    academic_year = models.ForeignKey(AcademicYear, on_delete=models.CASCADE, related_name='grades')
    semester = models.CharField(max_length=2, choices=SEMESTER_CHOICES)
    level = models.CharField(max_length=10, blank=True)
    grade = models.DecimalField(max_digits=5, decimal_places=2)  # 0.00 - 100.00
    status = models.CharField(max_length=10, choices=STATUS_CHOICES)
    session = models.CharField(max_length=10, choices=SESSION_CHOICES, default=SESSION_NORMAL)
    is_active = models.BooleanField(default=True)
    previous_grade = models.OneToOneField(
        'self', on_delete=models.SET_NULL, null=True, blank=True, related_name='retake_grade'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at', '-id']
        constraints = [
            models.UniqueConstraint(
                fields=['student', 'ue', 'academic_year', 'semester'],
                condition=Q(is_active=True),
                name='unique_active_grade_per_key',
            ),
        ]

    def __str__(self):
        return f"{self.student.student_id} - {self.ue.code} {self.semester}: {self.grade} ({self.status}, {self.session})"

    @property
    def key(self):
        return (self.student_id, self.ue_id, self.academic_year_id, self.semester)

# Audit trail for important actions
class AuditLog(models.Model):
    STATUS_CHOICES = [
        ('SUCCESS', 'Success'),
        ('ERROR', 'Error'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='audit_logs')
    action = models.CharField(max_length=60)  # 'CREATE_ENROLLMENT_SUCCESS', ...
    entity = models.CharField(max_length=50, blank=True)  # 'Enrollment', 'Grade', etc.
    entity_id = models.CharField(max_length=50, blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='SUCCESS')
    description = models.TextField(blank=True)
    error_message = models.TextField(blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-timestamp']

    def __str__(self):
        username = self.user.username if self.user else 'system'
        return f"{username} - {self.action} - {self.timestamp}"
