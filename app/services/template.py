from typing import List
from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.core.audit import AuditLogger
from app.core.errors import ServiceError, ErrorCode
from app.db.schema import User, UserRole, CredentialTemplate
from app.models.template import TemplateCreate


DEFAULT_TEMPLATE_ID = "dpp-v1"
DEFAULT_TEMPLATE = {
    "id": DEFAULT_TEMPLATE_ID,
    "name": "Digital Product Passport",
    "description": "Standard MOSIP-aligned passport for agricultural commodities",
    "schema_url": "https://mosip.io/dpp/schema/v1",
    "fields": ["product.name", "product.quantity", "inspection.moisturePercent"],
}


class TemplateService:
    """
    Credential template library. QA agencies browse it, admins extend it.
    """

    def __init__(self, session: Session, audit: AuditLogger):
        self.session = session
        self.audit = audit

    def ensure_default_template(self) -> CredentialTemplate:
        template = self.session.get(CredentialTemplate, DEFAULT_TEMPLATE_ID)
        if template:
            return template

        template = CredentialTemplate(**DEFAULT_TEMPLATE)
        try:
            self.session.add(template)
            self.session.commit()
        except IntegrityError:
            # Seeded concurrently by another request
            self.session.rollback()
            return self.session.get(CredentialTemplate, DEFAULT_TEMPLATE_ID)

        self.session.refresh(template)
        logger.info(f"Seeded default credential template '{DEFAULT_TEMPLATE_ID}'")
        return template

    # ==========================================================================
    # READ OPERATIONS
    # ==========================================================================

    def list_templates(self, user: User) -> List[CredentialTemplate]:
        if user.role not in (UserRole.ADMIN, UserRole.QA):
            raise ServiceError(
                ErrorCode.FORBIDDEN, "Your role is not allowed to view credential templates.")

        self.ensure_default_template()
        statement = select(CredentialTemplate).order_by(CredentialTemplate.created_at)
        return list(self.session.exec(statement).all())

    # ==========================================================================
    # WRITE OPERATIONS
    # ==========================================================================

    def _check_uniqueness(self, name: str):
        existing = self.session.exec(
            select(CredentialTemplate).where(CredentialTemplate.name == name)
        ).first()
        if existing:
            raise ServiceError(
                ErrorCode.TEMPLATE_ALREADY_EXISTS,
                f"A template named '{name}' already exists.")

    def create_template(self, user: User, data: TemplateCreate) -> CredentialTemplate:
        if user.role != UserRole.ADMIN:
            raise ServiceError(
                ErrorCode.FORBIDDEN, "Only administrators can create credential templates.")

        self.ensure_default_template()
        self._check_uniqueness(data.name)

        template = CredentialTemplate(
            created_by=user.id,
            **data.model_dump()
        )

        try:
            self.session.add(template)
            self.session.commit()
            self.session.refresh(template)
        except IntegrityError:
            self.session.rollback()
            raise ServiceError(
                ErrorCode.TEMPLATE_ALREADY_EXISTS,
                f"A template named '{data.name}' already exists.")
        except Exception as e:
            self.session.rollback()
            logger.error(f"Credential template creation failed: {e}")
            raise ServiceError(
                ErrorCode.INTERNAL_ERROR, "Could not create template.")

        logger.info(f"Credential template {template.id} created by {user.id}")
        self.audit.record(
            "template.created",
            actor_id=user.id,
            role=user.role.value,
            entity_type="TEMPLATE",
            entity_id=template.id,
            details={"name": template.name},
        )
        return template
