import enum
from typing import Any, Optional
from sqlalchemy.exc import SQLAlchemyError
from appraisal.services.base import BaseService
from appraisal.models.audit_log import AuditLog


def _sanitize(obj: Any) -> Any:
    """Make pydantic models, enums and datetimes JSON-storable."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if isinstance(obj, dict):
        return {k: _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize(i) for i in obj]
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    if isinstance(obj, enum.Enum):
        return obj.value
    return obj


class AuditService(BaseService):
    def log_action(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[int],
        user_id: Optional[int] = None,
        user_role: Optional[str] = None,
        details: Optional[dict] = None,
        before_state: Optional[dict] = None,
        after_state: Optional[dict] = None,
    ) -> Optional[AuditLog]:
        """
        Append an audit entry to the current session.
        Not committed here: the entry lands with the action it describes.
        """
        try:
            entry = AuditLog(
                company_id=self.company_id,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                user_id=user_id,
                user_role=_sanitize(user_role),
                details=_sanitize(details or {}),
                before_state=_sanitize(before_state),
                after_state=_sanitize(after_state),
            )
            self.db.add(entry)
            self.db.flush()
            return entry
        except SQLAlchemyError as e:
            # Never break the workflow because the trail could not be written
            self.log_error(f"FAILED TO AUDIT LOG: {e}")
            return None

    @staticmethod
    def log(db, company_id: Optional[int], *args, **kwargs):
        return AuditService(db, company_id).log_action(*args, **kwargs)
