"""
Administration of organizations and their users. Every route requires the
configured admin account.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from newsradar.auth import admin_context, hash_password, is_admin
from newsradar.context import RequestContext
from newsradar.database import get_db
from newsradar.errors import Conflict, Forbidden, NotFound
from newsradar.models import ArticleRating, Organization, User
from newsradar.schemas import (
    DeleteResponse,
    LLMConfigEnvelope,
    LLMConfigRequest,
    LLMConfigResponse,
    OrganizationEnvelope,
    OrganizationListResponse,
    OrganizationRequest,
    OrganizationResponse,
    OrganizationStatusRequest,
    UserCreateRequest,
    UserEnvelope,
    UserListResponse,
    UserResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", dependencies=[Depends(admin_context)])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _user_count(db: Session, organization_id: int) -> int:
    return db.execute(
        select(func.count(User.id)).where(User.organization_id == organization_id)
    ).scalar_one()


def _organization_response(db: Session, organization: Organization) -> OrganizationResponse:
    response = OrganizationResponse.model_validate(organization)
    response.user_count = _user_count(db, organization.id)
    return response


def _load_organization(db: Session, organization_id: int) -> Organization:
    organization = db.get(Organization, organization_id)
    if organization is None:
        raise NotFound("Organization not found")
    return organization


def _ensure_unique_name(db: Session, name: str, exclude_id: int = None) -> None:
    stmt = select(Organization.id).where(Organization.name == name)
    if exclude_id is not None:
        stmt = stmt.where(Organization.id != exclude_id)
    if db.execute(stmt).first() is not None:
        raise Conflict("Organization name already exists")


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------

@router.get("/organizations", response_model=OrganizationListResponse)
def list_organizations(db: Session = Depends(get_db)):
    counts = dict(
        db.execute(select(User.organization_id, func.count(User.id)).group_by(User.organization_id)).all()
    )
    organizations = db.execute(select(Organization).order_by(Organization.name)).scalars().all()

    responses = []
    for organization in organizations:
        response = OrganizationResponse.model_validate(organization)
        response.user_count = counts.get(organization.id, 0)
        responses.append(response)
    return OrganizationListResponse(organizations=responses)


@router.post("/organizations", response_model=OrganizationEnvelope, status_code=201)
def create_organization(payload: OrganizationRequest, db: Session = Depends(get_db)):
    _ensure_unique_name(db, payload.name)
    organization = Organization(name=payload.name, company_context=payload.company_context)
    db.add(organization)
    db.commit()
    db.refresh(organization)

    logger.info(f"[/api/admin/organizations] Created organization {organization.id} '{organization.name}'")
    return OrganizationEnvelope(organization=_organization_response(db, organization))


@router.get("/organizations/{organization_id}", response_model=OrganizationEnvelope)
def get_organization(organization_id: int, db: Session = Depends(get_db)):
    organization = _load_organization(db, organization_id)
    return OrganizationEnvelope(organization=_organization_response(db, organization))


@router.put("/organizations/{organization_id}", response_model=OrganizationEnvelope)
def update_organization(organization_id: int, payload: OrganizationRequest, db: Session = Depends(get_db)):
    organization = _load_organization(db, organization_id)
    _ensure_unique_name(db, payload.name, exclude_id=organization_id)

    organization.name = payload.name
    organization.company_context = payload.company_context
    db.commit()
    db.refresh(organization)
    return OrganizationEnvelope(organization=_organization_response(db, organization))


@router.patch("/organizations/{organization_id}", response_model=OrganizationEnvelope)
def set_organization_status(
    organization_id: int, payload: OrganizationStatusRequest, db: Session = Depends(get_db)
):
    """Activate or deactivate. Inactive organizations receive no newly ingested articles."""
    organization = _load_organization(db, organization_id)
    organization.is_active = payload.is_active
    db.commit()
    db.refresh(organization)

    logger.info(
        f"[/api/admin/organizations] Organization {organization_id} "
        f"{'activated' if organization.is_active else 'deactivated'}"
    )
    return OrganizationEnvelope(organization=_organization_response(db, organization))


@router.delete("/organizations/{organization_id}", response_model=DeleteResponse)
def delete_organization(organization_id: int, db: Session = Depends(get_db)):
    organization = _load_organization(db, organization_id)
    user_count = _user_count(db, organization_id)
    if user_count > 0:
        raise Conflict(
            f"Cannot delete organization with {user_count} user(s). "
            "Please delete or reassign users first."
        )

    db.delete(organization)
    db.commit()
    logger.info(f"[/api/admin/organizations] Deleted organization {organization_id}")
    return DeleteResponse(message="Organization deleted successfully")


@router.put("/organizations/{organization_id}/llm-config", response_model=LLMConfigEnvelope)
def update_llm_config(organization_id: int, payload: LLMConfigRequest, db: Session = Depends(get_db)):
    """Per-organization prompt and sampling overrides for the classifier."""
    organization = _load_organization(db, organization_id)
    organization.system_prompt = payload.system_prompt
    organization.user_prompt_template = payload.user_prompt_template or None
    organization.max_tokens = payload.max_tokens
    organization.temperature = payload.temperature
    db.commit()
    db.refresh(organization)
    return LLMConfigEnvelope(organization=LLMConfigResponse.model_validate(organization))


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

@router.get("/organizations/{organization_id}/users", response_model=UserListResponse)
def list_users(organization_id: int, db: Session = Depends(get_db)):
    _load_organization(db, organization_id)
    users = db.execute(
        select(User).where(User.organization_id == organization_id).order_by(User.username)
    ).scalars().all()
    return UserListResponse(users=[UserResponse.model_validate(u) for u in users])


@router.post("/organizations/{organization_id}/users", response_model=UserEnvelope, status_code=201)
def create_user(organization_id: int, payload: UserCreateRequest, db: Session = Depends(get_db)):
    _load_organization(db, organization_id)
    if db.execute(select(User.id).where(User.username == payload.username)).first() is not None:
        raise Conflict("Username already exists")

    user = User(
        username=payload.username,
        password_hash=hash_password(payload.password),
        full_name=payload.full_name,
        email=payload.email,
        organization_id=organization_id,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info(f"[/api/admin/users] Created user '{user.username}' in organization {organization_id}")
    return UserEnvelope(user=UserResponse.model_validate(user))


@router.delete("/users/{user_id}", response_model=DeleteResponse)
def delete_user(user_id: int, ctx: RequestContext = Depends(admin_context), db: Session = Depends(get_db)):
    user = db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    if is_admin(user.username):
        raise Forbidden("Cannot delete the admin user")

    db.execute(delete(ArticleRating).where(ArticleRating.user_id == user_id))
    db.delete(user)
    db.commit()
    logger.info(f"[/api/admin/users] User '{user.username}' deleted by {ctx.username}")
    return DeleteResponse(message="User deleted successfully")
