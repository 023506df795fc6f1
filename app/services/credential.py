import re
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, Optional
from loguru import logger
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.core.audit import AuditLogger
from app.core.config import settings
from app.core.errors import ServiceError, ErrorCode
from app.db.schema import (
    User, UserRole, Batch, BatchStatus, Inspection, InspectionResult,
    Credential, CredentialStatus, ProofMode
)
from app.services.authority import CREDENTIAL_CONTEXT, TrustAuthorityClient, WalletClient
from app.services.batch import BatchService, INSPECTOR_ROLES
from app.services.hooks import PostCommitHooks
from app.services.signing import Delegated, sign_document
from app.utils.qr import generate_qr_data_uri
from app.utils.timestamps import add_one_year, format_timestamp, utcnow_ms


CREDENTIAL_TYPES = ["VerifiableCredential", "DigitalProductPassport"]
DEFAULT_REVOCATION_REASON = "Revoked by admin"


def issuer_did_for(user: User, configured_did: str = "") -> str:
    """
    Prefers the configured authority DID. Otherwise derives one from the
    organization name.
    Example: 'Kerala Spice Labs Pvt.' -> 'did:example:kerala-spice-labs-pvt'
    """
    if configured_did:
        return configured_did

    slug = (user.organization or user.role.value).lower()
    slug = re.sub(r"[^a-z0-9]+", "-", slug).strip("-")
    return f"did:example:{slug or 'qa-agency'}"


def build_credential_document(
    batch: Batch,
    inspection: Inspection,
    issuer: str,
    credential_id: uuid.UUID,
    issued_at: datetime,
    expires_at: datetime,
) -> Dict[str, Any]:
    """
    Builds the unsigned credential. The subject is a snapshot: plain values
    copied out of the batch and inspection, never references to them.
    """
    return {
        "id": str(credential_id),
        "@context": list(CREDENTIAL_CONTEXT),
        "type": list(CREDENTIAL_TYPES),
        "issuer": issuer,
        "issuanceDate": format_timestamp(issued_at),
        "expirationDate": format_timestamp(expires_at),
        "credentialSubject": {
            "id": f"did:example:batch-{batch.id}",
            "product": {
                "name": batch.product_type,
                "variety": batch.variety or "",
                "grade": batch.grade or "",
                "batchNumber": batch.batch_number,
                "quantity": f"{batch.quantity:g} {batch.unit}",
                "origin": batch.origin_country,
                "destination": batch.destination_country,
                "harvestDate": batch.harvest_date.isoformat(),
            },
            "inspection": {
                "moisturePercent": inspection.moisture_percent,
                "pesticidePPM": inspection.pesticide_ppm,
                "organicStatus": inspection.organic_status,
                "isoCode": inspection.iso_code,
                "result": inspection.result.value,
                "recordedAt": format_timestamp(inspection.recorded_at),
            },
        },
    }


class CredentialService:
    """
    Credential issuance engine and revocation manager.
    """

    def __init__(
        self,
        session: Session,
        audit: AuditLogger,
        authority: Optional[TrustAuthorityClient] = None,
        wallet: Optional[WalletClient] = None,
        render_qr: Callable[[str], str] = generate_qr_data_uri,
        issuer_did: Optional[str] = None,
        batch_service: Optional[BatchService] = None,
    ):
        self.session = session
        self.audit = audit
        self.authority = authority
        self.wallet = wallet
        self.render_qr = render_qr
        self.issuer_did = settings.issuer_did if issuer_did is None else issuer_did
        self.batches = batch_service or BatchService(session, audit)

    # ==========================================================================
    # READ OPERATIONS
    # ==========================================================================

    def _active_credential(self, batch_id: uuid.UUID) -> Optional[Credential]:
        return self.session.exec(
            select(Credential).where(
                Credential.batch_id == batch_id,
                Credential.status == CredentialStatus.ACTIVE
            )
        ).first()

    def _latest_inspection(self, batch_id: uuid.UUID) -> Optional[Inspection]:
        return self.session.exec(
            select(Inspection)
            .where(Inspection.batch_id == batch_id)
            .order_by(Inspection.recorded_at.desc())
        ).first()

    def get_credential_by_id(self, credential_id: uuid.UUID) -> Optional[Credential]:
        return self.session.get(Credential, credential_id)

    def get_credential_for_batch(self, user: User, batch_id: uuid.UUID) -> Credential:
        """
        Returns the ACTIVE credential of a visible batch, or its most recent
        one if all have been revoked.
        """
        batch = self.batches.find_visible_batch(user, batch_id)
        credential = None
        if batch:
            credential = self._active_credential(batch_id) or self.session.exec(
                select(Credential)
                .where(Credential.batch_id == batch_id)
                .order_by(Credential.issued_at.desc())
            ).first()

        if not credential:
            raise ServiceError(
                ErrorCode.CREDENTIAL_NOT_FOUND, "Credential not issued yet.")
        return credential

    # ==========================================================================
    # ISSUANCE
    # ==========================================================================

    def _check_preconditions(self, batch: Batch) -> Inspection:
        """
        Guard sequence, first failure wins. A CERTIFIED batch has passed
        inspection already, so it falls through to the active-credential check.
        """
        if batch.status == BatchStatus.REJECTED:
            raise ServiceError(
                ErrorCode.BATCH_REJECTED,
                "Cannot issue credential for a rejected batch.")

        if batch.status not in (BatchStatus.INSPECTED, BatchStatus.CERTIFIED):
            raise ServiceError(
                ErrorCode.BATCH_NOT_INSPECTED,
                "Batch must be inspected and pass QA before credential can be issued.")

        inspection = self._latest_inspection(batch.id)
        if not inspection or inspection.result != InspectionResult.PASS:
            raise ServiceError(
                ErrorCode.INSPECTION_NOT_PASSED,
                "Batch inspection must pass before credential can be issued.")

        if self._active_credential(batch.id):
            raise ServiceError(
                ErrorCode.CREDENTIAL_ALREADY_ISSUED,
                "Credential has already been issued for this batch.")

        return inspection

    def _load_for_issuance(
        self, user: User, batch_id: uuid.UUID, lock: bool = False
    ) -> Batch:
        batch = self.batches.find_visible_batch(user, batch_id, lock=lock)
        if not batch:
            self.session.rollback()
            raise ServiceError(
                ErrorCode.BATCH_NOT_FOUND, "Batch not found or inaccessible.")
        return batch

    def _guarded(self, batch: Batch) -> Inspection:
        try:
            return self._check_preconditions(batch)
        except ServiceError:
            self.session.rollback()
            raise

    def issue_credential(
        self,
        user: User,
        batch_id: uuid.UUID,
        access_token: Optional[str] = None,
    ) -> Credential:
        if user.role not in INSPECTOR_ROLES:
            raise ServiceError(
                ErrorCode.FORBIDDEN, "Your role is not allowed to issue credentials.")

        # 1. Guards, without holding the row lock across the signing call
        batch = self._load_for_issuance(user, batch_id)
        inspection = self._guarded(batch)

        # 2. Identity, timestamps and document
        credential_id = uuid.uuid4()
        issuer = issuer_did_for(user, self.issuer_did)
        issued_at = utcnow_ms()
        expires_at = add_one_year(issued_at)

        document = build_credential_document(
            batch, inspection, issuer, credential_id, issued_at, expires_at)

        # 3. Proof (delegated or local placeholder)
        outcome = sign_document(
            document, CREDENTIAL_TYPES, self.authority, access_token)
        proof_mode = ProofMode.DELEGATED if isinstance(
            outcome, Delegated) else ProofMode.LOCAL
        if proof_mode == ProofMode.LOCAL and self.authority is not None:
            logger.warning(
                f"Credential {credential_id} issued with placeholder proof: {outcome.reason}")

        # 4. Verification pointers
        verification_url = f"{settings.public_url}/verify/{credential_id}"
        portal_url = f"{settings.verify_portal_url}?credential={credential_id}"

        credential = Credential(
            id=credential_id,
            batch_id=batch.id,
            issuer=issuer,
            issued_by=user.id,
            issued_at=issued_at,
            expires_at=expires_at,
            status=CredentialStatus.ACTIVE,
            proof_mode=proof_mode,
            credential_json=outcome.value,
            verification_url=verification_url,
            portal_url=portal_url,
            qr_image=self.render_qr(verification_url),
        )

        # 5. Lock the batch and re-check before the insert
        batch = self._load_for_issuance(user, batch_id, lock=True)
        if self._guarded(batch).id != inspection.id:
            self.session.rollback()
            raise ServiceError(
                ErrorCode.INVALID_BATCH_STATE,
                "Batch was re-inspected while the credential was being issued.")

        # 6. Persist credential + CERTIFIED transition atomically
        try:
            self.session.add(credential)
            self.batches.mark_certified(batch, user)
            self.session.commit()
        except IntegrityError:
            # Lost the race against a concurrent issuance for the same batch
            self.session.rollback()
            logger.warning(
                f"Concurrent issuance detected for batch {batch_id}, rejecting duplicate")
            raise ServiceError(
                ErrorCode.CREDENTIAL_ALREADY_ISSUED,
                "Credential has already been issued for this batch.")
        except Exception as e:
            self.session.rollback()
            logger.error(f"Credential issuance failed for batch {batch_id}: {e}")
            raise ServiceError(
                ErrorCode.INTERNAL_ERROR, "Could not issue credential.")

        self.session.refresh(credential)
        logger.info(
            f"Credential {credential.id} issued for batch {batch_id} ({proof_mode.value})")

        # 7. Soft side effects, after commit
        hooks = PostCommitHooks()
        if self.wallet is not None and access_token:
            exporter = self.session.get(User, batch.exporter_id)
            if exporter:
                hooks.add("wallet", self._share_to_wallet,
                          credential, exporter.email, access_token)
        hooks.add("audit", self._audit_issuance, credential, user)
        hooks.run()

        return credential

    def _share_to_wallet(self, credential: Credential, recipient: str, access_token: str) -> bool:
        result = self.wallet.share(credential.credential_json, recipient, access_token)

        credential.wallet_shared = True
        credential.wallet_shared_at = datetime.utcnow()
        try:
            self.session.add(credential)
            self.session.commit()
        except Exception:
            # Credential stays issued, just not marked as shared
            self.session.rollback()
            self.session.refresh(credential)
            raise
        self.session.refresh(credential)

        logger.info(
            f"Credential {credential.id} shared to wallet ({result.get('transactionId')})")
        return True

    def _audit_issuance(self, credential: Credential, user: User):
        return self.audit.record(
            "credential.issued",
            actor_id=user.id,
            role=user.role.value,
            entity_type="CREDENTIAL",
            entity_id=credential.id,
            details={
                "batchId": str(credential.batch_id),
                "walletShared": credential.wallet_shared,
                "proofMode": credential.proof_mode.value,
            },
        )

    # ==========================================================================
    # REVOCATION
    # ==========================================================================

    def revoke_credential(
        self,
        user: User,
        batch_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> Optional[Credential]:
        """
        Flips the batch's ACTIVE credential to REVOKED.
        Returns None when nothing ACTIVE exists, so revoking twice is a no-op
        that leaves the first revocation's metadata untouched. The batch
        itself stays CERTIFIED.
        """
        if user.role != UserRole.ADMIN:
            raise ServiceError(
                ErrorCode.FORBIDDEN, "Only administrators can revoke credentials.")

        if not self.batches.find_visible_batch(user, batch_id):
            return None

        active = self._active_credential(batch_id)
        if not active:
            return None
        credential_id = active.id

        now = datetime.utcnow()
        reason = reason or DEFAULT_REVOCATION_REASON

        # Conditional write: only a row that is still ACTIVE can transition
        statement = (
            update(Credential)
            .where(
                Credential.id == credential_id,
                Credential.status == CredentialStatus.ACTIVE
            )
            .values(
                status=CredentialStatus.REVOKED,
                revoked_at=now,
                revoked_by=user.id,
                revocation_reason=reason,
                updated_at=now
            )
            .execution_options(synchronize_session=False)
        )

        try:
            result = self.session.execute(statement)
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            logger.error(f"Revocation failed for batch {batch_id}: {e}")
            raise ServiceError(
                ErrorCode.INTERNAL_ERROR, "Could not revoke credential.")

        if result.rowcount == 0:
            # A concurrent revocation won
            return None

        credential = self.session.get(Credential, credential_id)
        self.session.refresh(credential)

        logger.info(f"Credential {credential.id} revoked by {user.id}: {reason}")
        self.audit.record(
            "credential.revoked",
            actor_id=user.id,
            role=user.role.value,
            entity_type="CREDENTIAL",
            entity_id=credential.id,
            details={"batchId": str(batch_id), "reason": reason},
        )
        return credential
