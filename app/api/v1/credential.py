from typing import List, Optional
from uuid import UUID
from fastapi import APIRouter, Body, Depends, status

from app.core.dependencies import (
    get_current_user, get_credential_service, get_external_token, get_template_service
)
from app.core.errors import ServiceError, ErrorCode
from app.services.credential import CredentialService
from app.services.template import TemplateService
from app.db.schema import User
from app.models.credential import CredentialRead, CredentialRevoke
from app.models.template import TemplateCreate, TemplateRead

router = APIRouter()


@router.get(
    "/templates",
    response_model=List[TemplateRead],
    summary="List Credential Templates",
    description="Returns the credential template library, including the default 'dpp-v1' passport. ADMIN and QA only."
)
def list_templates(
    current_user: User = Depends(get_current_user),
    service: TemplateService = Depends(get_template_service)
):
    return service.list_templates(current_user)


@router.post(
    "/templates",
    response_model=TemplateRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create Credential Template",
    description="Defines a new credential template. ADMIN only."
)
def create_template(
    data: TemplateCreate,
    current_user: User = Depends(get_current_user),
    service: TemplateService = Depends(get_template_service)
):
    return service.create_template(current_user, data)


@router.post(
    "/{batch_id}",
    response_model=CredentialRead,
    status_code=status.HTTP_201_CREATED,
    summary="Issue Credential",
    description="Issues the Digital Product Passport for an inspected batch."
)
def issue_credential(
    batch_id: UUID,
    current_user: User = Depends(get_current_user),
    access_token: Optional[str] = Depends(get_external_token),
    service: CredentialService = Depends(get_credential_service)
):
    return service.issue_credential(current_user, batch_id, access_token)


@router.get(
    "/{batch_id}",
    response_model=CredentialRead,
    summary="Get Credential",
    description="Returns the active (or most recent) credential of a batch."
)
def get_credential(
    batch_id: UUID,
    current_user: User = Depends(get_current_user),
    service: CredentialService = Depends(get_credential_service)
):
    return service.get_credential_for_batch(current_user, batch_id)


@router.post(
    "/{batch_id}/revoke",
    response_model=CredentialRead,
    summary="Revoke Credential",
    description="Revokes the active credential (ADMIN only). The batch remains CERTIFIED."
)
def revoke_credential(
    batch_id: UUID,
    payload: Optional[CredentialRevoke] = Body(default=None),
    current_user: User = Depends(get_current_user),
    service: CredentialService = Depends(get_credential_service)
):
    reason = payload.reason if payload else None
    credential = service.revoke_credential(current_user, batch_id, reason)
    if not credential:
        raise ServiceError(
            ErrorCode.CREDENTIAL_NOT_FOUND, "No active credential to revoke.")
    return credential
