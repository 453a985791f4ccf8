import uuid, json
from sqlalchemy.orm import Session
from valence.models.audit_log import AuditLog

STRIPE_ACTOR = "stripe"

def log_audit(db: Session, actor_user_id: str, action: str, entity_type: str, entity_id: str, details: dict | None = None) -> None:
    """Stage an audit row on the caller's transaction; committed with the change it describes."""
    db.add(AuditLog(
        id=str(uuid.uuid4()),
        actor_user_id=actor_user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details_json=json.dumps(details or {}, ensure_ascii=False, default=str),
    ))
