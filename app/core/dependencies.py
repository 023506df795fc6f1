from typing import Optional
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import Session

from app.core.audit import AuditLogger
from app.core.config import settings
from app.db.core import engine, get_session
from app.db.schema import User
from app.services.authority import (
    TrustAuthorityClient, WalletClient, build_trust_authority, build_wallet_client
)
from app.services.batch import BatchService
from app.services.credential import CredentialService
from app.services.template import TemplateService
from app.services.user import UserService
from app.services.verification import VerificationService

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token", auto_error=False)


def get_audit_logger() -> AuditLogger:
    return AuditLogger(engine)


def get_trust_authority() -> Optional[TrustAuthorityClient]:
    return build_trust_authority(settings)


def get_wallet_client() -> Optional[WalletClient]:
    return build_wallet_client(settings)


def get_external_token(
    x_esignet_token: Optional[str] = Header(default=None)
) -> Optional[str]:
    """Access token forwarded to the external trust and wallet authorities."""
    return x_esignet_token or None


def get_user_service(session: Session = Depends(get_session)) -> UserService:
    """Creates a UserService instance using the active DB session."""
    return UserService(session)


def get_batch_service(
    session: Session = Depends(get_session),
    audit: AuditLogger = Depends(get_audit_logger)
) -> BatchService:
    return BatchService(session=session, audit=audit)


def get_credential_service(
    session: Session = Depends(get_session),
    audit: AuditLogger = Depends(get_audit_logger),
    authority: Optional[TrustAuthorityClient] = Depends(get_trust_authority),
    wallet: Optional[WalletClient] = Depends(get_wallet_client)
) -> CredentialService:
    return CredentialService(
        session=session, audit=audit, authority=authority, wallet=wallet)


def get_template_service(
    session: Session = Depends(get_session),
    audit: AuditLogger = Depends(get_audit_logger)
) -> TemplateService:
    return TemplateService(session=session, audit=audit)


def get_verification_service(
    session: Session = Depends(get_session),
    audit: AuditLogger = Depends(get_audit_logger),
    authority: Optional[TrustAuthorityClient] = Depends(get_trust_authority)
) -> VerificationService:
    return VerificationService(session=session, audit=audit, authority=authority)


def get_current_user(
    token: str = Depends(oauth2_scheme),
    service: UserService = Depends(get_user_service)
) -> User:
    """
    Validates the JWT token and retrieves the user.
    This is the gatekeeper for protected routes.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token_data = service.verify_access_token(token)
    if not token_data:
        raise credentials_exception

    user = service.get_user_by_id(token_data.user_id)

    if user is None:
        raise credentials_exception

    if not user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user")

    return user


def get_optional_user(
    token: Optional[str] = Depends(optional_oauth2_scheme),
    service: UserService = Depends(get_user_service)
) -> Optional[User]:
    """
    Public endpoints (verification) accept anonymous callers. A token that is
    present but invalid is treated as anonymous.
    """
    if not token:
        return None

    token_data = service.verify_access_token(token)
    if not token_data:
        return None

    return service.validate_user(token_data.user_id)
