"""
Grade ledger service: normal and retake submissions with preserved history

Grades are append-only per (student, UE, academic year, semester): a retake
adds a new row and deactivates the previous one instead of overwriting it.
"""
from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction

from .audit_service import AuditService
from .exceptions import (
    AcademicsError, ConflictError, NotFoundError, ReferenceNotFoundError,
    StorageError, ValidationError
)
from .grading import classify, validate_score
from .models import AcademicYear, Grade, Student, UE
import logging

logger = logging.getLogger(__name__)


class GradeLedgerService:
    """Service for grade submission, retakes and grade history"""

    audit_service = AuditService

    ENTITY = 'Grade'
    VALID_SEMESTERS = [choice[0] for choice in Grade.SEMESTER_CHOICES]
    VALID_SESSIONS = [choice[0] for choice in Grade.SESSION_CHOICES]
    VALID_STATUSES = [choice[0] for choice in Grade.STATUS_CHOICES]
    DEFAULT_MAX_BULK_GRADES = 100

    @classmethod
    def submit_grade(cls, student_id, ue_id, academic_year_id, semester, score,
                     session=Grade.SESSION_NORMAL, level="", actor=None, ip_address=None):
        """
        Submit a grade for a (student, UE, academic year, semester) key

        A normal grade is rejected while the key has an active grade; a
        deactivated key can be graded again. A submission with
        session='Retake' is applied as a retake of the key's active grade.

        Returns:
            Grade: the new active grade

        Raises:
            ReferenceNotFoundError, InvalidScoreError, ValidationError,
            ConflictError, StorageError
        """
        context = {'user': actor, 'ip_address': ip_address}
        session = session or Grade.SESSION_NORMAL
        metadata = {
            'studentId': student_id,
            'ueId': ue_id,
            'academicYearId': academic_year_id,
            'semester': semester,
            'grade': score,
            'session': session,
        }

        cls.audit_service.record_attempt(
            'SUBMIT_GRADE', cls.ENTITY,
            description='Attempt to submit a grade',
            metadata=metadata, **context
        )

        retake_of = None
        try:
            cls._validate_choice('semester', semester, cls.VALID_SEMESTERS)
            cls._validate_choice('session', session, cls.VALID_SESSIONS)

            student = cls._get_reference(Student, 'Student', student_id)
            ue = cls._get_reference(UE, 'UE', ue_id)
            academic_year = cls._get_reference(AcademicYear, 'AcademicYear', academic_year_id)
            value = validate_score(score)

            if session == Grade.SESSION_RETAKE:
                active = cls.get_active_grade(student.id, ue.id, academic_year.id, semester)
                if active is None:
                    raise ConflictError(
                        ConflictError.RETAKE_NOT_ALLOWED,
                        details={'reason': 'No active grade to retake'},
                        message='No active grade exists for this UE, academic year and semester'
                    )
                retake_of = active.id
            else:
                status = classify(value, ue.passing_grade)

                with transaction.atomic():
                    # Serialise concurrent submissions for the same student
                    Student.objects.select_for_update().get(pk=student.pk)

                    existing = Grade.objects.filter(
                        student=student,
                        ue=ue,
                        academic_year=academic_year,
                        semester=semester,
                        is_active=True
                    ).first()

                    if existing:
                        raise ConflictError(
                            ConflictError.GRADE_ALREADY_EXISTS,
                            details={'existingGrade': cls._summary(existing)}
                        )

                    grade = Grade.objects.create(
                        student=student,
                        ue=ue,
                        academic_year=academic_year,
                        semester=semester,
                        level=str(level or ''),
                        grade=value,
                        status=status,
                        session=Grade.SESSION_NORMAL,
                        is_active=True,
                    )

        except AcademicsError as e:
            cls._record_failure('SUBMIT_GRADE', e, metadata=metadata, **context)
            raise
        except IntegrityError as e:
            error = ConflictError(ConflictError.GRADE_ALREADY_EXISTS, details=cls._clean(metadata))
            cls._record_failure('SUBMIT_GRADE', error, metadata=metadata, **context)
            raise error from e
        except DatabaseError as e:
            error = StorageError(f"Error submitting grade: {str(e)}")
            cls._record_failure('SUBMIT_GRADE', error, metadata=metadata, **context)
            raise error from e

        if retake_of is not None:
            try:
                retake = cls.record_retake(retake_of, score, actor=actor, ip_address=ip_address)
            except AcademicsError as e:
                cls._record_failure('SUBMIT_GRADE', e, metadata=metadata, **context)
                raise
            cls.audit_service.record_success(
                'SUBMIT_GRADE', cls.ENTITY,
                entity_id=retake.id,
                description=f'Retake session grade applied to grade {retake_of}',
                metadata={'grade': cls._summary(retake), 'previousGradeId': retake_of},
                **context
            )
            return retake

        logger.info(f"Grade submitted: {student.student_id} {ue.code} {semester}: {value} ({status})")
        cls.audit_service.record_success(
            'SUBMIT_GRADE', cls.ENTITY,
            entity_id=grade.id,
            description=f'New grade for {student.get_full_name()} in {ue.code}: {value}/100 ({status})',
            metadata={'grade': cls._summary(grade), 'passingGrade': ue.passing_grade},
            **context
        )
        return cls._load(grade.id)

    @classmethod
    def record_retake(cls, existing_grade_id, new_score, actor=None, ip_address=None):
        """
        Record a retake of an active normal-session grade classified Retake

        The previous row is kept with is_active=False; the new row carries
        session='Retake' and becomes the active grade for the key.
        """
        context = {'user': actor, 'ip_address': ip_address}
        metadata = {'previousGradeId': existing_grade_id, 'grade': new_score}

        cls.audit_service.record_attempt(
            'RECORD_RETAKE', cls.ENTITY,
            entity_id=existing_grade_id,
            description='Attempt to record a retake grade',
            metadata=metadata, **context
        )

        try:
            with transaction.atomic():
                try:
                    previous = Grade.objects.select_for_update().get(pk=existing_grade_id)
                except (Grade.DoesNotExist, ValueError, TypeError):
                    raise NotFoundError(cls.ENTITY, existing_grade_id)

                if not (previous.is_active
                        and previous.session == Grade.SESSION_NORMAL
                        and previous.status == Grade.STATUS_RETAKE):
                    raise ConflictError(
                        ConflictError.RETAKE_NOT_ALLOWED,
                        details={'grade': cls._summary(previous)}
                    )

                ue = UE.objects.get(pk=previous.ue_id)
                value = validate_score(new_score)
                status = classify(value, ue.passing_grade)

                # Deactivate first: only one active row per key
                previous.is_active = False
                previous.save(update_fields=['is_active', 'updated_at'])

                retake = Grade.objects.create(
                    student_id=previous.student_id,
                    ue_id=previous.ue_id,
                    academic_year_id=previous.academic_year_id,
                    semester=previous.semester,
                    level=previous.level,
                    grade=value,
                    status=status,
                    session=Grade.SESSION_RETAKE,
                    is_active=True,
                    previous_grade=previous,
                )

        except AcademicsError as e:
            cls._record_failure('RECORD_RETAKE', e, entity_id=existing_grade_id, metadata=metadata, **context)
            raise
        except IntegrityError as e:
            error = ConflictError(ConflictError.RETAKE_NOT_ALLOWED, details={'previousGradeId': existing_grade_id})
            cls._record_failure('RECORD_RETAKE', error, entity_id=existing_grade_id, metadata=metadata, **context)
            raise error from e
        except DatabaseError as e:
            error = StorageError(f"Error recording retake: {str(e)}")
            cls._record_failure('RECORD_RETAKE', error, entity_id=existing_grade_id, metadata=metadata, **context)
            raise error from e

        logger.info(f"Retake recorded for grade {previous.id}: {previous.grade} -> {value} ({status})")
        cls.audit_service.record_success(
            'RECORD_RETAKE', cls.ENTITY,
            entity_id=retake.id,
            description=f'Retake grade recorded: {value}/100 ({status})',
            metadata={'before': cls._summary(previous), 'after': cls._summary(retake)},
            **context
        )
        return cls._load(retake.id)

    @classmethod
    def bulk_submit(cls, grade_list, actor=None, ip_address=None):
        """
        Submit several grades independently

        Args:
            grade_list: list of dicts with studentId, ueId, academicYearId,
                semester, grade and optional session/level

        Returns:
            dict: {'succeeded': [Grade, ...], 'failed': [{'index', 'input', 'error'}, ...]}
        """
        context = {'user': actor, 'ip_address': ip_address}
        max_grades = getattr(settings, 'ACADEMICS', {}).get('MAX_BULK_GRADES', cls.DEFAULT_MAX_BULK_GRADES)

        try:
            if not isinstance(grade_list, (list, tuple)) or not grade_list:
                raise ValidationError("A list of grades is required")
            if len(grade_list) > max_grades:
                raise ValidationError(f"Too many grades in one request (maximum {max_grades})")
        except ValidationError as e:
            cls._record_failure('BULK_SUBMIT_GRADES', e, **context)
            raise

        succeeded = []
        failed = []

        for index, entry in enumerate(grade_list):
            try:
                grade = cls.submit_grade(actor=actor, ip_address=ip_address, **cls._bulk_entry(entry))
                succeeded.append(grade)
            except AcademicsError as e:
                failed.append({
                    'index': index,
                    'input': entry,
                    'error': e.to_dict(),
                })

        logger.info(f"Bulk grade submission: {len(succeeded)} succeeded, {len(failed)} failed")
        cls.audit_service.record_success(
            'BULK_SUBMIT_GRADES', cls.ENTITY,
            description=f'Bulk grade submission - {len(succeeded)} succeeded, {len(failed)} failed',
            metadata={
                'total': len(grade_list),
                'succeeded': len(succeeded),
                'failed': len(failed),
                'failedIndexes': [failure['index'] for failure in failed],
            },
            **context
        )
        return {'succeeded': succeeded, 'failed': failed}

    @classmethod
    def deactivate_grade(cls, grade_id, actor=None, ip_address=None):
        """Soft-delete an active grade; the row stays in the history"""
        context = {'user': actor, 'ip_address': ip_address}

        cls.audit_service.record_attempt(
            'DELETE_GRADE', cls.ENTITY,
            entity_id=grade_id,
            description='Attempt to deactivate a grade',
            **context
        )

        try:
            with transaction.atomic():
                grade = Grade.objects.select_for_update().filter(pk=grade_id, is_active=True).first()
                if grade is None:
                    raise NotFoundError(cls.ENTITY, grade_id)
                grade.is_active = False
                grade.save(update_fields=['is_active', 'updated_at'])
        except AcademicsError as e:
            cls._record_failure('DELETE_GRADE', e, entity_id=grade_id, **context)
            raise
        except (DatabaseError, ValueError, TypeError) as e:
            error = StorageError(f"Error deactivating grade: {str(e)}")
            cls._record_failure('DELETE_GRADE', error, entity_id=grade_id, **context)
            raise error from e

        logger.info(f"Grade {grade_id} deactivated")
        cls.audit_service.record_success(
            'DELETE_GRADE', cls.ENTITY,
            entity_id=grade_id,
            description='Grade deactivated',
            metadata={'grade': cls._summary(grade)},
            **context
        )
        return grade

    # ------------------------------------------------------------------
    # Queries (read-only)
    # ------------------------------------------------------------------

    @classmethod
    def get_history(cls, student_id, ue_id, academic_year_id, semester):
        """Every attempt for the key, most recent first"""
        return list(
            Grade.objects.filter(
                student_id=student_id,
                ue_id=ue_id,
                academic_year_id=academic_year_id,
                semester=semester
            ).select_related('student', 'ue', 'academic_year').order_by('-created_at', '-id')
        )

    @classmethod
    def get_grade(cls, grade_id):
        """One grade row, active or not"""
        try:
            return cls._load(grade_id)
        except (Grade.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(cls.ENTITY, grade_id)

    @classmethod
    def get_active_grade(cls, student_id, ue_id, academic_year_id, semester):
        return Grade.objects.filter(
            student_id=student_id,
            ue_id=ue_id,
            academic_year_id=academic_year_id,
            semester=semester,
            is_active=True
        ).select_related('student', 'ue', 'academic_year').first()

    @classmethod
    def list_active_grades(cls, student_id=None, ue_id=None, academic_year_id=None,
                           semester=None, status=None, session=None):
        """Active grades matching the given filters"""
        grades = Grade.objects.filter(is_active=True)

        if student_id:
            grades = grades.filter(student_id=student_id)
        if ue_id:
            grades = grades.filter(ue_id=ue_id)
        if academic_year_id:
            grades = grades.filter(academic_year_id=academic_year_id)
        if semester:
            cls._validate_choice('semester', semester, cls.VALID_SEMESTERS)
            grades = grades.filter(semester=semester)
        if status:
            cls._validate_choice('status', status, cls.VALID_STATUSES)
            grades = grades.filter(status=status)
        if session:
            cls._validate_choice('session', session, cls.VALID_SESSIONS)
            grades = grades.filter(session=session)

        return grades.select_related('student', 'ue', 'academic_year').order_by(
            '-academic_year__start_date', '-semester', '-created_at', '-id'
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @classmethod
    def _bulk_entry(cls, entry):
        if not isinstance(entry, dict):
            raise ValidationError("Each grade must be an object")

        required = ['studentId', 'ueId', 'academicYearId', 'semester', 'grade']
        missing = [field for field in required if entry.get(field) in (None, '')]
        if missing:
            raise ValidationError(
                "Invalid grade data",
                errors=[{'field': field, 'message': 'This field is required.'} for field in missing]
            )

        return {
            'student_id': entry['studentId'],
            'ue_id': entry['ueId'],
            'academic_year_id': entry['academicYearId'],
            'semester': entry['semester'],
            'score': entry['grade'],
            'session': entry.get('session') or Grade.SESSION_NORMAL,
            'level': entry.get('level') or '',
        }

    @classmethod
    def _validate_choice(cls, field, value, choices):
        if value not in choices:
            raise ValidationError(
                f"Invalid {field}: {value}",
                errors=[{'field': field, 'message': f"Must be one of {', '.join(choices)}"}]
            )

    @classmethod
    def _get_reference(cls, model, entity, pk):
        if pk in (None, ''):
            raise ReferenceNotFoundError(entity, pk)
        try:
            return model.objects.get(pk=pk)
        except (model.DoesNotExist, ValueError, TypeError):
            raise ReferenceNotFoundError(entity, pk)

    @classmethod
    def _record_failure(cls, action, error, **kwargs):
        logger.warning(f"{action} failed: {str(error)}")
        cls.audit_service.record_error(action, cls.ENTITY, error, **kwargs)

    @classmethod
    def _summary(cls, grade):
        return {
            'id': grade.id,
            'grade': str(grade.grade),
            'status': grade.status,
            'session': grade.session,
            'isActive': grade.is_active,
        }

    @classmethod
    def _clean(cls, metadata):
        return {key: str(value) for key, value in metadata.items()}

    @classmethod
    def _load(cls, grade_id):
        return Grade.objects.select_related('student', 'ue', 'academic_year').get(pk=grade_id)
