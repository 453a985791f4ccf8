from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from sqlalchemy.orm import Session
from valence.db.session import get_db
from valence.core.errors import Forbidden, Unauthorized
from valence.core.security import decode_token
from valence.models.user import User
from valence.services.payment_gateway import StripeGateway

bearer = HTTPBearer(auto_error=False)

def get_current_user(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: Session = Depends(get_db),
) -> User:
    """The one place a caller's identity and role are resolved."""
    if not creds:
        raise Unauthorized("Unauthorized")
    try:
        payload = decode_token(creds.credentials)
    except JWTError:
        raise Unauthorized("Unauthorized")
    user_id = payload.get("sub")
    user = db.get(User, user_id) if user_id else None
    if not user or not user.is_active:
        raise Unauthorized("Unauthorized")
    return user

def require_roles(*roles: str):
    def _guard(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise Forbidden("Forbidden")
        return user
    return _guard

def get_gateway(request: Request) -> StripeGateway:
    return request.app.state.payments
