"""FastAPI dependencies for authorization and the structure engine."""
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from curriculum_admin.config import settings
from curriculum_admin.database import get_db
from curriculum_admin.models import User, UserRole
from curriculum_admin.structure import SqlAlchemyStore


def get_current_user_id(request: Request) -> Optional[int]:
    """User id stored in the session by the external sign-in flow."""
    return request.session.get("user_id")


async def get_current_user(
    request: Request, db: Session = Depends(get_db)
) -> Optional[User]:
    """Get the current authenticated user from session."""
    user_id = get_current_user_id(request)
    if not user_id:
        return None

    user = db.query(User).filter(User.id == user_id).first()
    return user


async def require_user(
    request: Request, db: Session = Depends(get_db)
) -> User:
    """Require an authenticated user."""
    user = await get_current_user(request, db)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return user


async def require_editor(
    request: Request, db: Session = Depends(get_db)
) -> User:
    """Require a user allowed to change the structure."""
    user = await require_user(request, db)
    if user.role not in (UserRole.admin, UserRole.editor) and not is_admin_email(user.email):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Editor access required",
        )
    return user


def is_admin_email(email: str) -> bool:
    """Check if an email is in the admin list."""
    return email in settings.admin_email_list


def get_store(db: Session = Depends(get_db)) -> SqlAlchemyStore:
    """Persistence collaborator bound to the request's session."""
    return SqlAlchemyStore(db)
