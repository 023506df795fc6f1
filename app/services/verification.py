import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional
from loguru import logger
from sqlmodel import Session, select

from app.core.audit import AuditLogger
from app.db.schema import User, Credential, CredentialStatus, VerificationActivity
from app.models.verification import (
    Verdict, VerificationChecks, CredentialSummary, Evaluation
)
from app.services.authority import TrustAuthorityClient
from app.services.signing import check_signature
from app.utils.timestamps import format_timestamp, parse_timestamp


def _text(value: Any) -> Optional[str]:
    """Scalar to display string; nested structures are not summarized."""
    if value is None or isinstance(value, (dict, list)):
        return None
    return value if isinstance(value, str) else str(value)


def _string(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _route(product: Dict[str, Any]) -> str:
    return f"{_text(product.get('origin')) or 'N/A'} → {_text(product.get('destination')) or 'N/A'}"


def _subject(document: Any) -> Dict[str, Any]:
    subject = document.get("credentialSubject") if isinstance(document, dict) else None
    return subject if isinstance(subject, dict) else {}


def _product(subject: Dict[str, Any]) -> Dict[str, Any]:
    product = subject.get("product")
    return product if isinstance(product, dict) else {}


def _inspection(subject: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    inspection = subject.get("inspection")
    return inspection if isinstance(inspection, dict) else None


def summarize_record(credential: Credential) -> CredentialSummary:
    subject = _subject(credential.credential_json)
    product = _product(subject)
    return CredentialSummary(
        issuer=credential.issuer,
        batch_id=str(credential.batch_id),
        credential_id=str(credential.id),
        product_name=_text(product.get("name")),
        quantity=_text(product.get("quantity")),
        route=_route(product),
        inspection=_inspection(subject),
        issued_at=format_timestamp(credential.issued_at),
        expires_at=format_timestamp(credential.expires_at),
    )


def summarize_document(document: Dict[str, Any]) -> CredentialSummary:
    subject = _subject(document)
    product = _product(subject)
    return CredentialSummary(
        issuer=_string(document.get("issuer")),
        batch_id=_text(subject.get("id")),
        credential_id=_text(document.get("id")),
        product_name=_text(product.get("name")),
        quantity=_text(product.get("quantity")),
        route=_route(product) if _text(product.get("destination")) else None,
        inspection=_inspection(subject),
        issued_at=_string(document.get("issuanceDate")),
        expires_at=_string(document.get("expirationDate")),
    )


def stored_verdict(signature_valid: bool, revoked: bool, expired: bool) -> Verdict:
    # Priority: signature, then revocation, then expiry
    if not signature_valid:
        return Verdict.TAMPERED
    if revoked:
        return Verdict.REVOKED
    if expired:
        return Verdict.EXPIRED
    return Verdict.VALID


def upload_verdict(signature_valid: bool, expired: bool) -> Verdict:
    if not signature_valid:
        return Verdict.INVALID_SIGNATURE
    if expired:
        return Verdict.EXPIRED
    return Verdict.VALID_OFFLINE


class VerificationService:
    """
    Decides whether a presented credential can be trusted.
    Stored credentials are checked against the registry (signature, expiry,
    revocation); uploaded documents can only be checked for signature and
    expiry.
    """

    def __init__(
        self,
        session: Session,
        audit: AuditLogger,
        authority: Optional[TrustAuthorityClient] = None,
    ):
        self.session = session
        self.audit = audit
        self.authority = authority

    # ==========================================================================
    # EVALUATION
    # ==========================================================================

    def evaluate_record(
        self,
        credential: Optional[Credential],
        access_token: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Evaluation:
        if credential is None:
            return Evaluation(verdict=Verdict.NOT_FOUND)

        now = now or datetime.utcnow()
        document = credential.credential_json or {}

        outcome = check_signature(
            document,
            str(credential.id),
            format_timestamp(credential.issued_at),
            self.authority,
            access_token,
        )
        signature_valid = outcome.value is True
        expired = not (now <= credential.expires_at)
        revoked = credential.status == CredentialStatus.REVOKED

        return Evaluation(
            verdict=stored_verdict(signature_valid, revoked, expired),
            checks=VerificationChecks(
                signature=signature_valid,
                expiry=not expired,
                revocation=not revoked,
            ),
            summary=summarize_record(credential),
            credential=document,
        )

    def evaluate_upload(
        self,
        document: Any,
        access_token: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Evaluation:
        if not isinstance(document, dict):
            return Evaluation(verdict=Verdict.INVALID_SCHEMA)

        now = now or datetime.utcnow()
        credential_id = document.get("id")
        issued_at = document.get("issuanceDate")

        outcome = check_signature(
            document,
            credential_id if isinstance(credential_id, str) else None,
            issued_at if isinstance(issued_at, str) else None,
            self.authority,
            access_token,
        )
        signature_valid = outcome.value is True

        # Missing expiration means no expiry; an unreadable one is treated as expired
        raw_expiry = document.get("expirationDate")
        if raw_expiry is None:
            expired = False
        else:
            expires_at = parse_timestamp(raw_expiry)
            expired = expires_at is None or not (now <= expires_at)

        return Evaluation(
            verdict=upload_verdict(signature_valid, expired),
            checks=VerificationChecks(
                signature=signature_valid,
                expiry=not expired,
                # No registry is consultable for an arbitrary document
                revocation=True,
            ),
            summary=summarize_document(document),
            credential=document,
        )

    # ==========================================================================
    # ENTRY POINTS
    # ==========================================================================

    def _find_credential(self, credential_id: str) -> Optional[Credential]:
        try:
            key = uuid.UUID(str(credential_id))
        except ValueError:
            return None
        return self.session.get(Credential, key)

    def verify_by_id(
        self,
        credential_id: str,
        actor: Optional[User] = None,
        access_token: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Evaluation:
        credential = self._find_credential(credential_id)
        evaluation = self.evaluate_record(credential, access_token, now)
        role = actor.role.value if actor else "ANON"

        activity = VerificationActivity(
            credential_id=str(credential_id),
            verdict=evaluation.verdict.value,
            actor=role,
            product=evaluation.summary.product_name if evaluation.summary else None,
            route=evaluation.summary.route if evaluation.summary else None,
        )
        try:
            self.session.add(activity)
            self.session.commit()
        except Exception as e:
            # The activity log is observability only; the verdict still stands
            self.session.rollback()
            logger.error(f"Could not record verification activity: {e}")

        logger.info(f"Verification of {credential_id}: {evaluation.verdict.value}")
        self.audit.record(
            "verification.performed",
            actor_id=actor.id if actor else None,
            role=role,
            entity_type="CREDENTIAL",
            entity_id=credential_id,
            details={"verdict": evaluation.verdict.value},
        )
        return evaluation

    def verify_by_upload(
        self,
        document: Any,
        actor: Optional[User] = None,
        access_token: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Evaluation:
        evaluation = self.evaluate_upload(document, access_token, now)

        entity_id = document.get("id") if isinstance(document, dict) else None
        self.audit.record(
            "verification.upload",
            actor_id=actor.id if actor else None,
            role=actor.role.value if actor else "ANON",
            entity_type="CREDENTIAL",
            entity_id=entity_id,
            details={"verdict": evaluation.verdict.value},
        )
        return evaluation

    def list_activity(self, limit: int = 20) -> List[VerificationActivity]:
        statement = (
            select(VerificationActivity)
            .order_by(VerificationActivity.checked_at.desc())
            .limit(limit)
        )
        return list(self.session.exec(statement).all())
