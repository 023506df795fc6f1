from loguru import logger
from sqlmodel import Session, select
from app.core.config import settings
from app.core.audit import AuditLogger
from app.db.core import engine, init_db
from app.db.schema import User, UserRole
from app.services.template import TemplateService
from app.services.user import UserService


# 1. Default actors for a local environment, one per role
DEFAULT_USERS = [
    {"email": settings.default_admin_email, "role": UserRole.ADMIN,
     "organization": "AgriQCert"},
    {"email": "qa@agriqcert.test", "role": UserRole.QA,
     "organization": "Kerala Spice Labs"},
    {"email": "exporter@agriqcert.test", "role": UserRole.EXPORTER,
     "organization": "Malabar Exports"},
    {"email": "customs@agriqcert.test", "role": UserRole.CUSTOMS,
     "organization": "Rotterdam Customs"},
    {"email": "importer@agriqcert.test", "role": UserRole.IMPORTER,
     "organization": "Holland Foods BV"},
]


def seed_users(session: Session):
    logger.info("Seeding default users...")
    created = []

    for data in DEFAULT_USERS:
        user = session.exec(
            select(User).where(User.email == data["email"])
        ).first()

        if not user:
            user = User(**data)
            session.add(user)
            created.append(data["email"])
            logger.info(f"Created {data['role'].value} user: {data['email']}")

    session.commit()
    return created


def seed_templates(session: Session, audit: AuditLogger):
    template = TemplateService(session, audit).ensure_default_template()
    logger.info(f"Default credential template: {template.id}")
    return template


def print_dev_tokens(session: Session):
    service = UserService(session)
    for data in DEFAULT_USERS:
        user = service.get_user_by_email(data["email"])
        token = service.generate_access_token(user)
        logger.info(f"{data['role'].value:<9} {user.email}: {token.access_token}")


def main():
    init_db()
    with Session(engine) as session:
        seed_users(session)
        seed_templates(session, AuditLogger(engine))
        print_dev_tokens(session)
    logger.success("Database seeding completed successfully.")


if __name__ == "__main__":
    main()
