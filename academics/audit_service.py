"""
Audit logging service for enrollment and grade operations
"""
from django.db import transaction
from .models import AuditLog
import logging

logger = logging.getLogger(__name__)

class AuditService:
    """Best-effort audit sink: a failed audit write never fails the caller"""

    @classmethod
    def record(cls, action, entity, entity_id=None, status='SUCCESS', metadata=None,
               description="", error_message="", user=None, ip_address=None):
        """
        Record one audit entry

        Args:
            action: Action name, e.g. 'CREATE_ENROLLMENT_SUCCESS'
            entity: Entity name ('Enrollment', 'Grade')
            entity_id: Identifier of the affected record (optional)
            status: 'SUCCESS' or 'ERROR'
            metadata: JSON-serialisable dict with before/after values
            description: Human-readable summary
            error_message: Error text for failure paths
            user: Django user performing the action (optional)
            ip_address: IP address of the caller (optional)
        """
        try:
            # Savepoint: a failed insert must not poison an enclosing transaction
            with transaction.atomic():
                audit_log = AuditLog.objects.create(
                    user=user if user is not None and getattr(user, 'is_authenticated', False) else None,
                    action=action,
                    entity=entity,
                    entity_id='' if entity_id is None else str(entity_id),
                    status=status,
                    description=description,
                    error_message=error_message,
                    metadata=cls._clean_metadata(metadata or {}),
                    ip_address=ip_address,
                )
            return audit_log

        except Exception as e:
            logger.error(f"Error writing audit log {action} for {entity} {entity_id}: {str(e)}")
            return None

    @classmethod
    def record_attempt(cls, action, entity, **kwargs):
        return cls.record(f"{action}_ATTEMPT", entity, status='SUCCESS', **kwargs)

    @classmethod
    def record_success(cls, action, entity, **kwargs):
        return cls.record(f"{action}_SUCCESS", entity, status='SUCCESS', **kwargs)

    @classmethod
    def record_error(cls, action, entity, error, **kwargs):
        metadata = dict(kwargs.pop('metadata', None) or {})
        details = getattr(error, 'details', None)
        if details:
            metadata.setdefault('details', details)
        kind = getattr(error, 'kind', None)
        if kind:
            metadata.setdefault('kind', kind)
        return cls.record(
            f"{action}_ERROR", entity, status='ERROR',
            error_message=str(error), metadata=metadata, **kwargs
        )

    @classmethod
    def _clean_metadata(cls, metadata):
        """Make metadata JSON-safe (Decimals, dates and model ids become strings)"""
        if isinstance(metadata, dict):
            return {str(key): cls._clean_metadata(value) for key, value in metadata.items()}
        if isinstance(metadata, (list, tuple)):
            return [cls._clean_metadata(value) for value in metadata]
        if metadata is None or isinstance(metadata, (str, int, float, bool)):
            return metadata
        return str(metadata)

    @classmethod
    def get_entity_history(cls, entity, entity_id):
        """Audit trail of one record, newest first"""
        return AuditLog.objects.filter(
            entity=entity,
            entity_id=str(entity_id)
        ).order_by('-timestamp', '-id')
