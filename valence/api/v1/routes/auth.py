import uuid
from fastapi import APIRouter, Depends
from jose import JWTError
from sqlalchemy.orm import Session
from valence.db.session import get_db
from valence.core.errors import ConflictError, Unauthorized, ValidationError
from valence.schemas.auth import LoginRequest, MeOut, RefreshRequest, RegisterRequest, TokenPair
from valence.models.user import User
from valence.core.security import create_access_token, create_refresh_token, decode_token, hash_password, verify_password
from valence.api.deps import get_current_user

router = APIRouter(tags=["auth"])

def _tokens(user: User) -> TokenPair:
    return TokenPair(
        access_token=create_access_token(user.id, user.role),
        refresh_token=create_refresh_token(user.id, user.role),
    )

@router.post("/auth/register", response_model=TokenPair, status_code=201)
def register(body: RegisterRequest, db: Session = Depends(get_db)):
    email = body.email.strip().lower()
    if "@" not in email:
        raise ValidationError("A valid email is required")
    if len(body.password) < 8:
        raise ValidationError("Password too short")
    if db.query(User).filter(User.email == email).first():
        raise ConflictError("Email already registered")
    user = User(
        id=str(uuid.uuid4()),
        email=email,
        full_name=body.fullName.strip(),
        role=body.role,
        password_hash=hash_password(body.password),
        is_active=True,
    )
    db.add(user)
    db.commit()
    return _tokens(user)

@router.post("/auth/login", response_model=TokenPair)
def login(body: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == body.email.lower()).first()
    if not user or not user.is_active:
        raise Unauthorized("Invalid credentials")
    if not verify_password(body.password, user.password_hash):
        raise Unauthorized("Invalid credentials")
    return _tokens(user)


@router.post("/auth/refresh", response_model=TokenPair)
def refresh(body: RefreshRequest, db: Session = Depends(get_db)):
    try:
        payload = decode_token(body.refresh_token, expected_type="refresh")
    except JWTError:
        raise Unauthorized("Invalid refresh token")
    user_id = payload.get("sub")
    user = db.get(User, user_id) if user_id else None
    if not user or not user.is_active:
        raise Unauthorized("User not found or inactive")
    return _tokens(user)

@router.get("/auth/me", response_model=MeOut)
def me(me: User = Depends(get_current_user)):
    """Return current user info including role."""
    return MeOut(id=me.id, email=me.email, fullName=me.full_name or "", role=me.role)
