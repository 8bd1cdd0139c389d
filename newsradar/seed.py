"""
Creates the first organization and the admin account, so the admin routes can
be reached on a fresh database.

Usage:
    python -m newsradar.seed --org "Acme" --context "Acme is a logistics company." --password 'S3cure-pass'

The admin username is taken from ADMIN_USERNAME (default "admin"). Running it
again is harmless: existing rows are left as they are.
"""
import argparse
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from newsradar.auth import hash_password
from newsradar.config import settings
from newsradar.database import Base, SessionLocal, dispose_engine, get_engine
from newsradar.models import Organization, User

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("newsradar.seed")


def seed(db: Session, org_name: str, company_context: str, password: str) -> User:
    organization = db.execute(select(Organization).where(Organization.name == org_name)).scalar_one_or_none()
    if organization is None:
        organization = Organization(name=org_name, company_context=company_context)
        db.add(organization)
        db.flush()
        logger.info(f"Created organization '{org_name}'")
    else:
        logger.info(f"Organization '{org_name}' already exists")

    admin = db.execute(select(User).where(User.username == settings.admin_username)).scalar_one_or_none()
    if admin is None:
        admin = User(
            username=settings.admin_username,
            password_hash=hash_password(password),
            full_name="Administrator",
            organization_id=organization.id,
        )
        db.add(admin)
        logger.info(f"Created admin user '{settings.admin_username}'")
    else:
        logger.info(f"Admin user '{settings.admin_username}' already exists")

    db.commit()
    return admin


def main():
    parser = argparse.ArgumentParser(description="Create the first organization and the admin user.")
    parser.add_argument("--org", required=True, help="Organization name")
    parser.add_argument("--context", required=True, help="Company context fed to the classifier")
    parser.add_argument("--password", required=True, help="Admin password (min 8 characters)")
    args = parser.parse_args()

    if len(args.password) < 8:
        parser.error("password must be at least 8 characters")

    Base.metadata.create_all(bind=get_engine())
    db = SessionLocal()
    try:
        seed(db, args.org, args.context, args.password)
    finally:
        db.close()
        dispose_engine()


if __name__ == "__main__":
    main()
