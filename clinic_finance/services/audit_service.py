"""
Audit logging service for tracking financial actions.
Audit failures are logged and never break the triggering operation.
"""
import json
import logging

from clinic_finance.models import AuditLog, AuditAction

logger = logging.getLogger(__name__)


def log_action(
    session,
    action: AuditAction,
    resource_type: str = None,
    resource_id: str = None,
    details: dict = None
):
    """
    Log an auditable action to the database.

    Must be called after the business write has been committed: the audit row
    is committed on its own so that a failure here can be rolled back without
    touching the business data.

    Args:
        session: Database session
        action: AuditAction enum value
        resource_type: Type of resource affected (e.g., 'payment')
        resource_id: ID of the affected resource
        details: Dict with additional details (will be JSON encoded)
    """
    try:
        details_json = None
        if details:
            try:
                details_json = json.dumps(details, default=str)
            except Exception as e:
                logger.warning(f"Failed to serialize audit details: {e}")
                details_json = str(details)

        audit_entry = AuditLog(
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details_json
        )

        session.add(audit_entry)
        session.commit()

        logger.info(f"Audit log created: {action.value} on {resource_type} {resource_id}")
        return audit_entry

    except Exception as e:
        session.rollback()
        logger.error(f"Failed to create audit log: {e}")
        # Don't raise exception - audit failures should not break business logic
        return None


def get_audit_logs(
    session,
    limit: int = 100,
    offset: int = 0,
    action_filter: AuditAction = None,
    resource_type_filter: str = None,
    resource_id_filter: str = None
):
    """
    Retrieve audit logs with optional filters, newest first.

    Returns:
        List of AuditLog objects
    """
    query = session.query(AuditLog)

    if action_filter:
        query = query.filter(AuditLog.action == action_filter)

    if resource_type_filter:
        query = query.filter(AuditLog.resource_type == resource_type_filter)

    if resource_id_filter:
        query = query.filter(AuditLog.resource_id == resource_id_filter)

    query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    query = query.limit(limit).offset(offset)

    return query.all()
