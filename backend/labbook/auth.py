from uuid import UUID

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .database import get_db
from . import models

# purpose: resolve the caller forwarded by the authenticating gateway
# status: active
# related_docs: DESIGN.md


async def get_current_user(
    x_user_id: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> models.User:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing user identity")
    try:
        user_id = UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid user identity")
    user = db.get(models.User, user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user


async def require_admin(
    user: models.User = Depends(get_current_user),
) -> models.User:
    if not user.is_admin or user.status != "active":
        raise HTTPException(status_code=403, detail="Administrator access required")
    return user
