import uuid

import pytest
from sqlmodel import select

from app.core.errors import ServiceError, ErrorCode
from app.db.schema import AuditLog, BatchStatus, Credential, CredentialStatus
from app.services.credential import CredentialService, DEFAULT_REVOCATION_REASON
from tests.conftest import fixed_qr


@pytest.fixture
def credential_service(session, audit, batch_service):
    return CredentialService(
        session, audit, render_qr=fixed_qr, issuer_did="", batch_service=batch_service)


@pytest.fixture
def issued(credential_service, qa_user, inspected_batch) -> Credential:
    return credential_service.issue_credential(qa_user, inspected_batch.id)


def test_revoke_active_credential(session, credential_service, admin_user, inspected_batch, issued):
    revoked = credential_service.revoke_credential(
        admin_user, inspected_batch.id, "Contamination found at port")

    assert revoked.id == issued.id
    assert revoked.status == CredentialStatus.REVOKED
    assert revoked.revoked_by == admin_user.id
    assert revoked.revoked_at is not None
    assert revoked.revocation_reason == "Contamination found at port"

    session.refresh(inspected_batch)
    assert inspected_batch.status == BatchStatus.CERTIFIED


def test_default_revocation_reason(credential_service, admin_user, inspected_batch, issued):
    revoked = credential_service.revoke_credential(admin_user, inspected_batch.id)
    assert revoked.revocation_reason == DEFAULT_REVOCATION_REASON


def test_second_revocation_is_a_noop(session, credential_service, admin_user, inspected_batch, issued):
    first = credential_service.revoke_credential(admin_user, inspected_batch.id, "First reason")
    revoked_at = first.revoked_at

    assert credential_service.revoke_credential(admin_user, inspected_batch.id, "Second reason") is None

    stored = session.get(Credential, issued.id)
    session.refresh(stored)
    assert stored.revocation_reason == "First reason"
    assert stored.revoked_by == admin_user.id
    assert stored.revoked_at == revoked_at


def test_revoke_without_credential(credential_service, admin_user, inspected_batch):
    assert credential_service.revoke_credential(admin_user, inspected_batch.id) is None
    assert credential_service.revoke_credential(admin_user, uuid.uuid4()) is None


def test_exporter_cannot_revoke(credential_service, exporter_user, inspected_batch, issued):
    with pytest.raises(ServiceError) as exc:
        credential_service.revoke_credential(exporter_user, inspected_batch.id)
    assert exc.value.code == ErrorCode.FORBIDDEN


def test_qa_cannot_revoke(session, credential_service, qa_user, inspected_batch, issued):
    with pytest.raises(ServiceError) as exc:
        credential_service.revoke_credential(qa_user, inspected_batch.id)
    assert exc.value.code == ErrorCode.FORBIDDEN

    stored = session.get(Credential, issued.id)
    session.refresh(stored)
    assert stored.status == CredentialStatus.ACTIVE


def test_revocation_is_scoped_to_visible_batches(
    session, credential_service, admin_user, inspected_batch, issued, monkeypatch
):
    monkeypatch.setattr(
        credential_service.batches, "find_visible_batch", lambda user, batch_id, lock=False: None)

    assert credential_service.revoke_credential(admin_user, inspected_batch.id) is None

    stored = session.get(Credential, issued.id)
    session.refresh(stored)
    assert stored.status == CredentialStatus.ACTIVE


def test_revocation_is_audited(session, credential_service, admin_user, inspected_batch, issued):
    credential_service.revoke_credential(admin_user, inspected_batch.id, "Mislabelled sacks")

    entry = session.exec(
        select(AuditLog).where(AuditLog.action == "credential.revoked")
    ).one()
    assert entry.entity_id == str(issued.id)
    assert entry.details == {"batchId": str(inspected_batch.id), "reason": "Mislabelled sacks"}


def test_reissue_after_revocation(session, credential_service, admin_user, qa_user, inspected_batch, issued):
    credential_service.revoke_credential(admin_user, inspected_batch.id)

    reissued = credential_service.issue_credential(qa_user, inspected_batch.id)

    assert reissued.id != issued.id
    assert reissued.status == CredentialStatus.ACTIVE
    assert credential_service.get_credential_for_batch(qa_user, inspected_batch.id).id == reissued.id
    assert len(session.exec(select(Credential)).all()) == 2


def test_revoked_credential_is_still_readable(credential_service, exporter_user, admin_user, inspected_batch, issued):
    credential_service.revoke_credential(admin_user, inspected_batch.id)

    latest = credential_service.get_credential_for_batch(exporter_user, inspected_batch.id)
    assert latest.id == issued.id
    assert latest.status == CredentialStatus.REVOKED
