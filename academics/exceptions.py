"""
Typed errors raised by the enrollment and grade services.

Views translate them into HTTP responses through ``http_status`` and
``to_dict()``; management commands print ``str(error)``.
"""


class AcademicsError(Exception):
    """Base class for enrollment/grade domain errors"""

    code = 'ACADEMICS_ERROR'
    http_status = 400

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self):
        return {
            'error': self.code,
            'message': self.message,
            'details': self.details,
        }


class ValidationError(AcademicsError):
    """Raised when an input payload is malformed"""

    code = 'VALIDATION_ERROR'

    def __init__(self, message, errors=None):
        super().__init__(message, details={'errors': errors or []})
        self.errors = errors or []


class InvalidScoreError(ValidationError):
    """Raised when a score is not a number in [0, 100] with at most 2 decimals"""

    code = 'INVALID_SCORE'

    def __init__(self, score, reason="Score must be a number between 0 and 100"):
        super().__init__(reason)
        self.score = score
        self.details = {'score': str(score)}


class ReferenceNotFoundError(AcademicsError):
    """A referenced Student/Faculty/AcademicYear/UE does not exist"""

    code = 'REFERENCE_NOT_FOUND'

    def __init__(self, entity, id):
        super().__init__(f"{entity} '{id}' does not exist", details={'entity': entity, 'id': str(id)})
        self.entity = entity
        self.id = id


class NotFoundError(AcademicsError):
    """The target of an update/delete/retake does not exist"""

    code = 'NOT_FOUND'
    http_status = 404

    def __init__(self, entity, id):
        super().__init__(f"{entity} '{id}' not found", details={'entity': entity, 'id': str(id)})
        self.entity = entity
        self.id = id


class ConflictError(AcademicsError):
    """Raised when an operation would break an enrollment or grade invariant"""

    MULTIPLE_ENROLLMENTS_SAME_YEAR = 'MultipleEnrollmentsSameYear'
    DUPLICATE_ENROLLMENT = 'DuplicateEnrollment'
    GRADE_ALREADY_EXISTS = 'GradeAlreadyExists'
    RETAKE_NOT_ALLOWED = 'RetakeNotAllowed'

    MESSAGES = {
        MULTIPLE_ENROLLMENTS_SAME_YEAR: 'Student is already enrolled in a different level for this academic year',
        DUPLICATE_ENROLLMENT: 'Student is already enrolled in this faculty and level for this academic year',
        GRADE_ALREADY_EXISTS: 'A normal session grade already exists for this UE, academic year and semester',
        RETAKE_NOT_ALLOWED: 'Only an active normal session grade classified as Retake can be retaken',
    }

    code = 'CONFLICT'
    http_status = 409

    def __init__(self, kind, details=None, message=None):
        super().__init__(message or self.MESSAGES.get(kind, kind), details=details)
        self.kind = kind

    def to_dict(self):
        data = super().to_dict()
        data['kind'] = self.kind
        return data


class StorageError(AcademicsError):
    """The underlying transaction failed; nothing was written"""

    code = 'STORAGE_ERROR'
    http_status = 500
