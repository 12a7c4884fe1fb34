"""
Audit Logging Service
Writes one audit_logs entry per create or status change, tagged with the
caller forwarded by get_current_user.
"""
import logging
from typing import Optional

from models.audit import AuditLog, AuditAction, AuditModule

logger = logging.getLogger(__name__)


class AuditService:

    @staticmethod
    async def log(
        db,
        action: AuditAction,
        module: AuditModule,
        user: Optional[dict],
        record_type: str,
        record_id: str,
        from_status: Optional[str] = None,
        to_status: Optional[str] = None,
        changes: Optional[dict] = None,
        description: Optional[str] = None,
    ) -> str:
        """
        Store an audit entry and echo it to the module logger.

        Args:
            user: Caller dict from get_current_user, None for internal jobs
            record_type: "donor", "donation", "blood_unit", "blood_request" or "transfusion"
            from_status / to_status: Lifecycle states around a transition
            changes: Fields written alongside the transition

        Returns:
            ID of the audit entry
        """
        entry = AuditLog(
            action=action,
            module=module,
            record_type=record_type,
            record_id=record_id,
            from_status=from_status,
            to_status=to_status,
            changes=changes,
            description=description,
            user_id=user.get("id") if user else None,
            user_name=user.get("full_name") if user else None,
            user_role=user.get("role") if user else None,
        )
        await db.audit_logs.insert_one(entry.model_dump(mode="json"))

        logger.info("[%s] %s %s %s", module.value, action.value, record_type, record_id)
        return entry.id


async def audit_create(db, module: AuditModule, user: Optional[dict], record_id: str, record_type: str,
                       changes: dict, description: Optional[str] = None):
    return await AuditService.log(
        db, AuditAction.CREATE, module, user, record_type, record_id,
        changes=changes,
        description=description or f"Created {record_type} {record_id}",
    )


async def audit_transition(
    db,
    action: AuditAction,
    module: AuditModule,
    user: Optional[dict],
    record_id: str,
    record_type: str,
    from_status: str,
    to_status: str,
    description: Optional[str] = None,
    changes: Optional[dict] = None,
):
    return await AuditService.log(
        db, action, module, user, record_type, record_id,
        from_status=from_status,
        to_status=to_status,
        changes=changes,
        description=description or f"{record_type} {record_id}: {from_status} -> {to_status}",
    )
