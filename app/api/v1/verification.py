from typing import Any, List, Optional
from fastapi import APIRouter, Body, Depends, Query

from app.core.dependencies import (
    get_current_user, get_optional_user, get_verification_service, get_external_token
)
from app.services.verification import VerificationService
from app.db.schema import User
from app.models.verification import Evaluation, VerificationActivityRead

router = APIRouter()

# Mounted at the application root: '<public_url>/verify/<id>' is printed in
# QR codes and embedded in issued credentials.
public_router = APIRouter()


@router.get(
    "/activity",
    response_model=List[VerificationActivityRead],
    summary="Recent Verifications",
    description="Most recent verification attempts, newest first."
)
def list_activity(
    limit: int = Query(default=20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    service: VerificationService = Depends(get_verification_service)
):
    return service.list_activity(limit)


@router.post(
    "/upload",
    response_model=Evaluation,
    summary="Verify Uploaded Credential",
    description="Checks signature and expiry of a credential document. Revocation cannot be checked offline."
)
def verify_upload(
    body: Any = Body(default=None),
    current_user: Optional[User] = Depends(get_optional_user),
    access_token: Optional[str] = Depends(get_external_token),
    service: VerificationService = Depends(get_verification_service)
):
    """
    Accepts either the bare credential or {"credential": {...}}.
    """
    document = body
    if isinstance(body, dict) and isinstance(body.get("credential"), dict):
        document = body["credential"]
    return service.verify_by_upload(document, current_user, access_token)


@router.get(
    "/{credential_id}",
    response_model=Evaluation,
    summary="Verify Credential",
    description="Evaluates a stored credential by ID."
)
def verify_by_id(
    credential_id: str,
    current_user: Optional[User] = Depends(get_optional_user),
    access_token: Optional[str] = Depends(get_external_token),
    service: VerificationService = Depends(get_verification_service)
):
    return service.verify_by_id(credential_id, current_user, access_token)


@public_router.get(
    "/verify/{credential_id}",
    response_model=Evaluation,
    summary="Public Verification Link",
    tags=["Public"]
)
def public_verify(
    credential_id: str,
    current_user: Optional[User] = Depends(get_optional_user),
    access_token: Optional[str] = Depends(get_external_token),
    service: VerificationService = Depends(get_verification_service)
):
    return service.verify_by_id(credential_id, current_user, access_token)
