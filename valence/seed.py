import logging
import uuid

from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import ProgrammingError

from valence.core.config import settings
from valence.core.security import hash_password
from valence.models.user import User

logger = logging.getLogger(__name__)

DEV_USERS = [
    ("admin@valence.local", "admin12345", "admin", "Admin"),
    ("provider@valence.local", "provider12345", "provider", "Demo Provider"),
    ("customer@valence.local", "customer12345", "customer", "Demo Customer"),
]


def ensure_user(db: Session, email: str, password: str, role: str, name: str) -> bool:
    if db.query(User).filter(User.email == email).first():
        return False
    db.add(
        User(
            id=str(uuid.uuid4()),
            email=email,
            full_name=name,
            role=role,
            password_hash=hash_password(password),
            is_active=True,
        )
    )
    db.commit()
    return True


def run(db: Session) -> int:
    """Create local demo accounts. Does nothing outside ENV=local."""
    if settings.ENV != "local":
        return 0
    # If migrations haven't been applied yet, seeding must not crash the API.
    try:
        db.execute(text("SELECT 1 FROM users LIMIT 1"))
    except ProgrammingError:
        db.rollback()
        logger.warning("users table not found yet. Skipping seeding (run alembic upgrade head).")
        return 0
    created = sum(ensure_user(db, *u) for u in DEV_USERS)
    if created:
        logger.info("Seeded %d local users", created)
    return created
