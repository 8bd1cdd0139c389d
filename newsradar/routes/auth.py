import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from newsradar.auth import authenticate, current_context, end_session, is_admin, start_session
from newsradar.context import RequestContext
from newsradar.database import get_db
from newsradar.errors import NotFound, Unauthorized
from newsradar.models import User, utcnow
from newsradar.schemas import LoginRequest, ProfileResponse, ProfileUpdate, SessionUser

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def _session_user(user: User) -> SessionUser:
    return SessionUser(
        id=user.id,
        username=user.username,
        organization_id=user.organization_id,
        is_admin=is_admin(user.username),
    )


def _profile(user: User) -> ProfileResponse:
    return ProfileResponse(
        username=user.username,
        full_name=user.full_name,
        email=user.email,
        organization_id=user.organization_id,
        organization_name=user.organization.name if user.organization else None,
        last_dashboard_visit=user.last_dashboard_visit,
    )


def _load_user(db: Session, ctx: RequestContext) -> User:
    user = db.get(User, ctx.user_id)
    if user is None:
        raise NotFound("User not found")
    return user


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

@router.post("/auth/login", response_model=SessionUser)
def login(payload: LoginRequest, request: Request, db: Session = Depends(get_db)):
    user = authenticate(db, payload.username, payload.password)
    if user is None:
        raise Unauthorized("Invalid username or password")
    start_session(request, user)
    return _session_user(user)


@router.post("/auth/logout")
def logout(request: Request):
    end_session(request)
    return {"success": True}


@router.get("/auth/session", response_model=SessionUser)
def session(ctx: RequestContext = Depends(current_context)):
    """The signed-in user, or 401."""
    return SessionUser(
        id=ctx.user_id,
        username=ctx.username,
        organization_id=ctx.organization_id,
        is_admin=is_admin(ctx.username),
    )


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

@router.get("/user/profile", response_model=ProfileResponse)
def get_profile(ctx: RequestContext = Depends(current_context), db: Session = Depends(get_db)):
    return _profile(_load_user(db, ctx))


@router.put("/user/profile", response_model=ProfileResponse)
def update_profile(
    payload: ProfileUpdate,
    ctx: RequestContext = Depends(current_context),
    db: Session = Depends(get_db),
):
    user = _load_user(db, ctx)
    user.full_name = payload.full_name
    user.email = payload.email
    db.commit()
    logger.info(f"[/api/user/profile] Updated profile of {user.username}")
    return _profile(user)


@router.post("/user/dashboard-visit")
def dashboard_visit(ctx: RequestContext = Depends(current_context), db: Session = Depends(get_db)):
    """Record that the user opened the dashboard. Drives the 'new since last visit' list."""
    user = _load_user(db, ctx)
    user.last_dashboard_visit = utcnow()
    db.commit()
    return {"success": True, "lastDashboardVisit": user.last_dashboard_visit.isoformat()}
