"""
Credential login backed by a signed cookie session.

The session carries ``{id, username, organizationId}``; every handler turns it
into a RequestContext through the dependencies below.
"""
import logging
from typing import Optional

import bcrypt
from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from newsradar.config import settings
from newsradar.context import RequestContext
from newsradar.errors import Forbidden, Unauthorized
from newsradar.models import User, utcnow

logger = logging.getLogger(__name__)

SESSION_KEY = "user"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=settings.bcrypt_rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


def authenticate(db: Session, username: str, password: str) -> Optional[User]:
    """Check credentials. On success stamps last_login and returns the user."""
    logger.info(f"Attempting login for user: {username}")
    user = db.execute(select(User).where(User.username == username)).scalar_one_or_none()

    if user is None:
        logger.info(f"User not found: {username}")
        return None
    if not user.is_active:
        logger.info(f"User account is disabled: {username}")
        return None
    if not verify_password(password, user.password_hash):
        logger.info(f"Invalid password for user: {username}")
        return None

    user.last_login = utcnow()
    db.commit()
    logger.info(f"Login successful for user: {username}")
    return user


def is_admin(username: str) -> bool:
    return username == settings.admin_username


def start_session(request: Request, user: User) -> None:
    request.session[SESSION_KEY] = {
        "id": user.id,
        "username": user.username,
        "organizationId": user.organization_id,
    }


def end_session(request: Request) -> None:
    request.session.pop(SESSION_KEY, None)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def current_context(request: Request) -> RequestContext:
    """Any signed-in user."""
    user = request.session.get(SESSION_KEY)
    if not user:
        raise Unauthorized("Unauthorized - Please log in")
    return RequestContext(
        user_id=user["id"],
        username=user["username"],
        organization_id=user.get("organizationId"),
    )


def tenant_context(ctx: RequestContext = Depends(current_context)) -> RequestContext:
    """A signed-in user that belongs to an organization."""
    if ctx.organization_id is None:
        raise Forbidden("User is not associated with an organization")
    return ctx


def admin_context(ctx: RequestContext = Depends(current_context)) -> RequestContext:
    if not is_admin(ctx.username):
        raise Forbidden("Access denied. Admin privileges required.")
    return ctx
