"""
Enrollment consistency service

Keeps the single-active-enrollment invariant: a student holds at most one
Active enrollment, never two levels in the same academic year, and every new
enrollment moves the previous Active ones to Completed in the same transaction.
"""
from datetime import date, datetime, time

from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from .audit_service import AuditService
from .exceptions import (
    AcademicsError, ConflictError, NotFoundError, ReferenceNotFoundError,
    StorageError, ValidationError
)
from .models import AcademicYear, Enrollment, Faculty, Student
import logging

logger = logging.getLogger(__name__)


class EnrollmentService:
    """Service for enrollment creation, updates and status repair"""

    audit_service = AuditService

    ENTITY = 'Enrollment'
    VALID_STATUSES = [choice[0] for choice in Enrollment.STATUS_CHOICES]

    # ------------------------------------------------------------------
    # Create / update / delete
    # ------------------------------------------------------------------

    @classmethod
    def create_enrollment(cls, student_id, faculty_id, level, academic_year_id,
                          enrollment_date=None, actor=None, ip_address=None):
        """
        Enroll a student into a faculty/level for an academic year

        Args:
            student_id: Student primary key
            faculty_id: Faculty primary key
            level: Level label ("1", "2", ...)
            academic_year_id: AcademicYear primary key
            enrollment_date: datetime, date or ISO string (defaults to now)
            actor: User performing the enrollment (optional)
            ip_address: IP address of the caller (optional)

        Returns:
            Enrollment: the new Active enrollment

        Raises:
            ReferenceNotFoundError, ConflictError, ValidationError, StorageError
        """
        context = {'user': actor, 'ip_address': ip_address}
        level = cls._clean_level(level) if level is not None else ''
        metadata = {
            'studentId': student_id,
            'facultyId': faculty_id,
            'level': level,
            'academicYearId': academic_year_id,
        }

        cls.audit_service.record_attempt(
            'CREATE_ENROLLMENT', cls.ENTITY,
            description='Attempt to create a new enrollment',
            metadata=metadata, **context
        )

        try:
            if not level:
                raise ValidationError("Level is required", errors=[{'field': 'level', 'message': 'This field is required.'}])
            enrollment_date = cls._parse_enrollment_date(enrollment_date)

            faculty = cls._get_reference(Faculty, 'Faculty', faculty_id)
            academic_year = cls._get_reference(AcademicYear, 'AcademicYear', academic_year_id)
            student = cls._get_reference(Student, 'Student', student_id)

            with transaction.atomic():
                # Serialise concurrent enrollments of the same student
                Student.objects.select_for_update().get(pk=student.pk)

                cls._check_conflicts(student, faculty, level, academic_year)

                previous_ids = list(
                    Enrollment.objects.filter(
                        student=student,
                        status=Enrollment.STATUS_ACTIVE
                    ).values_list('id', flat=True)
                )
                if previous_ids:
                    Enrollment.objects.filter(id__in=previous_ids).update(
                        status=Enrollment.STATUS_COMPLETED,
                        updated_at=timezone.now()
                    )

                enrollment = Enrollment.objects.create(
                    student=student,
                    faculty=faculty,
                    level=level,
                    academic_year=academic_year,
                    status=Enrollment.STATUS_ACTIVE,
                    enrollment_date=enrollment_date,
                )

        except AcademicsError as e:
            cls._record_failure('CREATE_ENROLLMENT', e, metadata=metadata, **context)
            raise
        except IntegrityError as e:
            error = ConflictError(ConflictError.DUPLICATE_ENROLLMENT, details=metadata)
            cls._record_failure('CREATE_ENROLLMENT', error, metadata=metadata, **context)
            raise error from e
        except DatabaseError as e:
            error = StorageError(f"Error creating enrollment: {str(e)}")
            cls._record_failure('CREATE_ENROLLMENT', error, metadata=metadata, **context)
            raise error from e

        if previous_ids:
            logger.info(f"Marked {len(previous_ids)} previous enrollment(s) of student {student.student_id} as Completed")
        logger.info(f"Enrollment created: {student.student_id} in {faculty.name} L{level} ({academic_year.year})")

        cls.audit_service.record_success(
            'CREATE_ENROLLMENT', cls.ENTITY,
            entity_id=enrollment.id,
            description='Enrollment created successfully',
            metadata={
                'studentId': student.id,
                'faculty': faculty.name,
                'level': level,
                'academicYear': academic_year.year,
                'previousEnrollmentsUpdated': len(previous_ids),
                'completedEnrollmentIds': previous_ids,
            },
            **context
        )

        return cls._load(enrollment.id)

    @classmethod
    def update_enrollment(cls, enrollment_id, fields, actor=None, ip_address=None):
        """
        Update an enrollment

        ``fields`` may contain faculty (id or name), facultyId, academicYear
        (id or year label), academicYearId, level, status and enrollmentDate.
        """
        context = {'user': actor, 'ip_address': ip_address}
        fields = dict(fields or {})
        metadata = {'updateFields': sorted(fields.keys())}

        cls.audit_service.record_attempt(
            'UPDATE_ENROLLMENT', cls.ENTITY,
            entity_id=enrollment_id,
            description='Attempt to update an enrollment',
            metadata=metadata, **context
        )

        try:
            try:
                enrollment = Enrollment.objects.select_related('student', 'faculty', 'academic_year').get(pk=enrollment_id)
            except (Enrollment.DoesNotExist, ValueError, TypeError):
                raise NotFoundError(cls.ENTITY, enrollment_id)

            before = enrollment.to_summary()
            changes = {}

            faculty_value = fields.get('facultyId') or fields.get('faculty')
            if faculty_value:
                changes['faculty'] = cls._resolve_faculty(faculty_value)

            year_value = fields.get('academicYearId') or fields.get('academicYear')
            if year_value:
                changes['academic_year'] = cls._resolve_academic_year(year_value)

            if fields.get('level') not in (None, ''):
                changes['level'] = cls._clean_level(fields['level'])

            if fields.get('status'):
                if fields['status'] not in cls.VALID_STATUSES:
                    raise ValidationError(
                        f"Invalid status: {fields['status']}",
                        errors=[{'field': 'status', 'message': f"Must be one of {', '.join(cls.VALID_STATUSES)}"}]
                    )
                changes['status'] = fields['status']

            if fields.get('enrollmentDate'):
                changes['enrollment_date'] = cls._parse_enrollment_date(fields['enrollmentDate'])

            with transaction.atomic():
                Student.objects.select_for_update().get(pk=enrollment.student_id)

                if {'faculty', 'academic_year', 'level'} & set(changes):
                    cls._check_conflicts(
                        enrollment.student,
                        changes.get('faculty', enrollment.faculty),
                        changes.get('level', enrollment.level),
                        changes.get('academic_year', enrollment.academic_year),
                        exclude_id=enrollment.id
                    )

                # Re-activating keeps the single-active invariant
                completed_ids = []
                if changes.get('status') == Enrollment.STATUS_ACTIVE and enrollment.status != Enrollment.STATUS_ACTIVE:
                    completed_ids = list(
                        Enrollment.objects.filter(
                            student_id=enrollment.student_id,
                            status=Enrollment.STATUS_ACTIVE
                        ).exclude(id=enrollment.id).values_list('id', flat=True)
                    )
                    Enrollment.objects.filter(id__in=completed_ids).update(
                        status=Enrollment.STATUS_COMPLETED,
                        updated_at=timezone.now()
                    )

                for name, value in changes.items():
                    setattr(enrollment, name, value)
                enrollment.save()

        except AcademicsError as e:
            cls._record_failure('UPDATE_ENROLLMENT', e, entity_id=enrollment_id, metadata=metadata, **context)
            raise
        except IntegrityError as e:
            error = ConflictError(ConflictError.DUPLICATE_ENROLLMENT, details={'enrollmentId': enrollment_id})
            cls._record_failure('UPDATE_ENROLLMENT', error, entity_id=enrollment_id, metadata=metadata, **context)
            raise error from e
        except DatabaseError as e:
            error = StorageError(f"Error updating enrollment: {str(e)}")
            cls._record_failure('UPDATE_ENROLLMENT', error, entity_id=enrollment_id, metadata=metadata, **context)
            raise error from e

        enrollment = cls._load(enrollment.id)
        logger.info(f"Enrollment {enrollment.id} updated: {', '.join(sorted(changes)) or 'no changes'}")

        cls.audit_service.record_success(
            'UPDATE_ENROLLMENT', cls.ENTITY,
            entity_id=enrollment.id,
            description='Enrollment updated successfully',
            metadata={
                'updatedFields': sorted(changes.keys()),
                'studentId': enrollment.student_id,
                'before': before,
                'after': enrollment.to_summary(),
                'completedEnrollmentIds': completed_ids,
            },
            **context
        )
        return enrollment

    @classmethod
    def delete_enrollment(cls, enrollment_id, actor=None, ip_address=None):
        """Delete an enrollment (no cascading business logic)"""
        context = {'user': actor, 'ip_address': ip_address}

        cls.audit_service.record_attempt(
            'DELETE_ENROLLMENT', cls.ENTITY,
            entity_id=enrollment_id,
            description='Attempt to delete an enrollment',
            **context
        )

        try:
            try:
                enrollment = Enrollment.objects.select_related('student', 'faculty', 'academic_year').get(pk=enrollment_id)
            except (Enrollment.DoesNotExist, ValueError, TypeError):
                raise NotFoundError(cls.ENTITY, enrollment_id)

            summary = enrollment.to_summary()
            summary['studentId'] = enrollment.student.student_id
            summary['studentName'] = enrollment.student.get_full_name()
            enrollment.delete()

        except AcademicsError as e:
            cls._record_failure('DELETE_ENROLLMENT', e, entity_id=enrollment_id, **context)
            raise
        except DatabaseError as e:
            error = StorageError(f"Error deleting enrollment: {str(e)}")
            cls._record_failure('DELETE_ENROLLMENT', error, entity_id=enrollment_id, **context)
            raise error from e

        logger.info(f"Enrollment {enrollment_id} deleted")
        cls.audit_service.record_success(
            'DELETE_ENROLLMENT', cls.ENTITY,
            entity_id=enrollment_id,
            description='Enrollment deleted successfully',
            metadata={'before': summary},
            **context
        )

    # ------------------------------------------------------------------
    # Status repair
    # ------------------------------------------------------------------

    @classmethod
    def ensure_single_active_enrollment(cls, student_id, actor=None, ip_address=None):
        """
        Keep only the most recent Active enrollment of a student.

        Older Active enrollments (by enrollment_date, then id) become
        Completed. Returns the number of enrollments changed; calling it
        again once the invariant holds changes nothing and returns 0.
        """
        context = {'user': actor, 'ip_address': ip_address}
        metadata = {'studentId': student_id}

        cls.audit_service.record_attempt(
            'ENSURE_SINGLE_ACTIVE_ENROLLMENT', cls.ENTITY,
            description=f'Check active enrollments of student {student_id}',
            metadata=metadata, **context
        )

        kept = None
        stale_ids = []
        try:
            with transaction.atomic():
                active_enrollments = list(
                    Enrollment.objects.select_for_update().filter(
                        student_id=student_id,
                        status=Enrollment.STATUS_ACTIVE
                    ).order_by('-enrollment_date', '-id')
                )

                if active_enrollments:
                    kept = active_enrollments[0]
                    stale_ids = [enrollment.id for enrollment in active_enrollments[1:]]
                if stale_ids:
                    Enrollment.objects.filter(id__in=stale_ids).update(
                        status=Enrollment.STATUS_COMPLETED,
                        updated_at=timezone.now()
                    )
        except (DatabaseError, ValueError, TypeError) as e:
            error = StorageError(f"Error fixing enrollment statuses: {str(e)}")
            cls._record_failure('ENSURE_SINGLE_ACTIVE_ENROLLMENT', error, metadata=metadata, **context)
            raise error from e

        if stale_ids:
            logger.info(f"Student {student_id}: kept enrollment {kept.id} active, completed {len(stale_ids)} other(s)")
        cls.audit_service.record_success(
            'ENSURE_SINGLE_ACTIVE_ENROLLMENT', cls.ENTITY,
            entity_id=kept.id if kept else None,
            description=f'Completed {len(stale_ids)} stale active enrollment(s) for student {student_id}',
            metadata={
                'studentId': student_id,
                'keptEnrollmentId': kept.id if kept else None,
                'completedEnrollmentIds': stale_ids,
            },
            **context
        )
        return len(stale_ids)

    @classmethod
    def fix_student_enrollment_status(cls, student_id, actor=None, ip_address=None):
        """Repair one student and return their enrollments, most recent first"""
        context = {'user': actor, 'ip_address': ip_address}
        metadata = {'studentId': student_id}

        cls.audit_service.record_attempt(
            'FIX_STUDENT_ENROLLMENT_STATUS', cls.ENTITY,
            description=f'Attempt to fix enrollment statuses of student {student_id}',
            metadata=metadata, **context
        )

        try:
            student = cls._get_reference(Student, 'Student', student_id)
            changed = cls.ensure_single_active_enrollment(student.id, actor=actor, ip_address=ip_address)
        except AcademicsError as e:
            cls._record_failure('FIX_STUDENT_ENROLLMENT_STATUS', e, metadata=metadata, **context)
            raise

        enrollments = cls.list_student_enrollments(student.id)
        cls.audit_service.record_success(
            'FIX_STUDENT_ENROLLMENT_STATUS', cls.ENTITY,
            description=f'Enrollment statuses fixed for {student.get_full_name()}',
            metadata={
                'studentId': student.id,
                'studentName': student.get_full_name(),
                'enrollmentsCount': len(enrollments),
                'enrollmentsUpdated': changed,
                'activeEnrollments': sum(1 for e in enrollments if e.status == Enrollment.STATUS_ACTIVE),
            },
            **context
        )
        return enrollments

    @classmethod
    def fix_all_students(cls, actor=None, ip_address=None):
        """
        Apply ensure_single_active_enrollment to every student

        Each student is repaired in its own transaction; a failure for one
        student is reported and does not stop the others.

        Returns:
            dict: studentsChecked, fixedCount, enrollmentsUpdated, failures
        """
        context = {'user': actor, 'ip_address': ip_address}
        cls.audit_service.record(
            'FIX_ENROLLMENT_STATUSES_START', cls.ENTITY,
            description='Start of enrollment status repair for all students',
            metadata={'studentId': 'all'},
            **context
        )

        students_checked = 0
        fixed_count = 0
        enrollments_updated = 0
        failures = []

        for student_id in Student.objects.order_by('id').values_list('id', flat=True):
            students_checked += 1
            try:
                changed = cls.ensure_single_active_enrollment(student_id, actor=actor, ip_address=ip_address)
            except StorageError as e:
                logger.error(f"Error fixing enrollment statuses for student {student_id}: {str(e)}")
                failures.append({'studentId': student_id, 'error': str(e)})
                continue

            if changed:
                fixed_count += 1
                enrollments_updated += changed

        summary = {
            'studentsChecked': students_checked,
            'fixedCount': fixed_count,
            'enrollmentsUpdated': enrollments_updated,
            'failures': failures,
        }

        logger.info(f"Enrollment statuses checked for {students_checked} students, {fixed_count} fixed")
        cls.audit_service.record(
            'FIX_ENROLLMENT_STATUSES_COMPLETE', cls.ENTITY,
            status='ERROR' if failures else 'SUCCESS',
            description='Enrollment status repair for all students',
            metadata=summary,
            **context
        )
        return summary

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @classmethod
    def list_student_enrollments(cls, student_id):
        return list(
            Enrollment.objects.filter(student_id=student_id)
            .select_related('student', 'faculty', 'academic_year')
            .order_by('-enrollment_date', '-id')
        )

    @classmethod
    def list_enrollments(cls, student_id=None, academic_year_id=None, status=None):
        enrollments = Enrollment.objects.select_related('student', 'faculty', 'academic_year')
        if student_id:
            enrollments = enrollments.filter(student_id=student_id)
        if academic_year_id:
            enrollments = enrollments.filter(academic_year_id=academic_year_id)
        if status:
            enrollments = enrollments.filter(status=status)
        return enrollments.order_by('-enrollment_date', '-id')

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @classmethod
    def _check_conflicts(cls, student, faculty, level, academic_year, exclude_id=None):
        """Reject a second level in the same year, then an exact duplicate"""
        same_year = Enrollment.objects.filter(
            student=student,
            academic_year=academic_year
        ).select_related('faculty', 'academic_year')
        if exclude_id is not None:
            same_year = same_year.exclude(id=exclude_id)

        other_level = same_year.exclude(level=level).first()
        if other_level:
            raise ConflictError(
                ConflictError.MULTIPLE_ENROLLMENTS_SAME_YEAR,
                details={'existingEnrollment': other_level.to_summary()},
                message=(
                    f"Student is already enrolled in level {other_level.level} ({other_level.faculty.name}) "
                    f"for academic year {other_level.academic_year.year}. A student cannot enroll in two "
                    f"different levels in the same academic year."
                )
            )

        duplicate = same_year.filter(faculty=faculty, level=level).first()
        if duplicate:
            raise ConflictError(
                ConflictError.DUPLICATE_ENROLLMENT,
                details={'existingEnrollment': duplicate.to_summary()}
            )

    @classmethod
    def _record_failure(cls, action, error, **kwargs):
        logger.warning(f"{action} failed: {str(error)}")
        cls.audit_service.record_error(action, cls.ENTITY, error, **kwargs)

    @classmethod
    def _get_reference(cls, model, entity, pk):
        if pk in (None, ''):
            raise ReferenceNotFoundError(entity, pk)
        try:
            return model.objects.get(pk=pk)
        except (model.DoesNotExist, ValueError, TypeError):
            raise ReferenceNotFoundError(entity, pk)

    @classmethod
    def _resolve_faculty(cls, value):
        """Faculty by primary key, name or code"""
        lookup = Q(name=value) | Q(code=value)
        if str(value).isdigit():
            lookup |= Q(pk=int(value))
        faculty = Faculty.objects.filter(lookup).order_by('id').first()
        if not faculty:
            raise ReferenceNotFoundError('Faculty', value)
        return faculty

    @classmethod
    def _resolve_academic_year(cls, value):
        """AcademicYear by primary key or year label"""
        lookup = Q(year=value)
        if str(value).isdigit():
            lookup |= Q(pk=int(value))
        academic_year = AcademicYear.objects.filter(lookup).order_by('id').first()
        if not academic_year:
            raise ReferenceNotFoundError('AcademicYear', value)
        return academic_year

    @classmethod
    def _clean_level(cls, level):
        return str(level).strip()

    @classmethod
    def _parse_enrollment_date(cls, value):
        if value in (None, ''):
            return timezone.now()

        parsed = value
        if isinstance(value, str):
            try:
                parsed = parse_datetime(value) or parse_date(value)
            except ValueError:
                parsed = None
            if parsed is None:
                raise ValidationError(
                    f"Invalid enrollment date: {value}",
                    errors=[{'field': 'enrollmentDate', 'message': 'Invalid date.'}]
                )

        if isinstance(parsed, datetime):
            pass
        elif isinstance(parsed, date):
            parsed = datetime.combine(parsed, time.min)
        else:
            raise ValidationError(
                f"Invalid enrollment date: {value}",
                errors=[{'field': 'enrollmentDate', 'message': 'Invalid date.'}]
            )

        if timezone.is_naive(parsed):
            parsed = timezone.make_aware(parsed)
        return parsed

    @classmethod
    def _load(cls, enrollment_id):
        return Enrollment.objects.select_related('student', 'faculty', 'academic_year').get(pk=enrollment_id)
