"""User API routes."""
import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from reservations.database import get_db
from reservations.errors import NotFound, ValidationError
from reservations.models.user import User
from reservations.schemas.user import PermissionsOut, UserCreate, UserOut, UserUpdate
from reservations.services.permissions import get_permissions

logger = logging.getLogger(__name__)
router = APIRouter()


def _get_user(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.user_id == user_id).first()
    if not user:
        raise NotFound("User not found")
    return user


@router.post("/", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_user(payload: UserCreate, db: Session = Depends(get_db)):
    """Create a user with an optional role and department."""
    email = payload.email.strip().lower()
    if db.query(User).filter(User.email == email).first():
        raise ValidationError("User already exists", [f"A user with e-mail {email} already exists"])
    user = User(**payload.model_dump(exclude={"email"}), email=email)
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Created user %s (%s)", user.user_id, user.email)
    return user


@router.get("/", response_model=list[UserOut])
def list_users(db: Session = Depends(get_db)):
    """List all users."""
    return db.query(User).order_by(User.email).all()


@router.get("/{user_id}", response_model=UserOut)
def get_user(user_id: str, db: Session = Depends(get_db)):
    """Fetch a single user by ID."""
    return _get_user(db, user_id)


@router.patch("/{user_id}", response_model=UserOut)
def update_user(user_id: str, payload: UserUpdate, db: Session = Depends(get_db)):
    """Update role, department or contact details (partial update)."""
    user = _get_user(db, user_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(user, field, value)
    db.commit()
    db.refresh(user)
    logger.info("Updated user %s", user_id)
    return user


@router.get("/{user_id}/permissions", response_model=PermissionsOut)
def user_permissions(user_id: str, db: Session = Depends(get_db)):
    """Effective role and capability flags for the client."""
    return get_permissions(_get_user(db, user_id))
