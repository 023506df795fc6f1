"""Pytest configuration and fixtures."""

import os

# Settings are read at import time; provide test values first
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("PUBLIC_URL", "https://api.agriqcert.test")
os.environ.setdefault("VERIFY_PORTAL_URL", "https://portal.agriqcert.test/verify")

from datetime import date
from typing import Any, Dict, List, Optional

import pytest
from sqlmodel import Session, SQLModel, create_engine

from app.core.audit import AuditLogger
from app.core.errors import ExternalServiceError
from app.db.schema import User, UserRole, Batch, InspectionResult, OrganicStatus
from app.models.batch import BatchCreate, InspectionCreate
from app.services.batch import BatchService


@pytest.fixture(scope="function")
def engine(tmp_path):
    """
    File-backed SQLite per test, so the audit logger's own sessions get
    their own connections like they would against PostgreSQL.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def audit(engine) -> AuditLogger:
    return AuditLogger(engine)


def _user(session: Session, email: str, role: UserRole, organization: Optional[str]) -> User:
    user = User(email=email, role=role, organization=organization)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def admin_user(session) -> User:
    return _user(session, "admin@agriqcert.test", UserRole.ADMIN, "AgriQCert")


@pytest.fixture
def qa_user(session) -> User:
    return _user(session, "qa@spicelabs.test", UserRole.QA, "Kerala Spice Labs Pvt.")


@pytest.fixture
def other_qa_user(session) -> User:
    return _user(session, "qa2@otherlab.test", UserRole.QA, "Other Lab")


@pytest.fixture
def exporter_user(session) -> User:
    return _user(session, "exporter@malabar.test", UserRole.EXPORTER, "Malabar Exports")


@pytest.fixture
def customs_user(session) -> User:
    return _user(session, "officer@customs.test", UserRole.CUSTOMS, "Rotterdam Customs")


@pytest.fixture
def batch_payload() -> BatchCreate:
    return BatchCreate(
        product_type="Cardamom",
        grade="AGEB 8mm",
        variety="Green Bold",
        batch_number="CARD-2025-014",
        quantity=1200,
        unit="kg",
        weight=1250.5,
        weight_unit="kg",
        farm_address="Idukki, Kerala",
        farmer_details="Thomas Farms cooperative",
        harvest_date=date(2025, 9, 14),
        organic_status=OrganicStatus.ORGANIC,
        container_details="MSKU1234567",
        origin_country="India",
        destination_country="Netherlands",
        notes="Handle dry",
    )


def make_inspection(result: InspectionResult = InspectionResult.PASS, **overrides) -> InspectionCreate:
    data = {
        "moisture_percent": 11.3,
        "pesticide_ppm": 0.05,
        "organic_status": "India Organic Certified",
        "iso_code": "ISO 22000",
        "result": result,
        "notes": "Sampled 3 sacks",
    }
    data.update(overrides)
    return InspectionCreate(**data)


@pytest.fixture
def batch_service(session, audit) -> BatchService:
    return BatchService(session, audit, enforce_qa_assignment=False)


@pytest.fixture
def submitted_batch(batch_service, exporter_user, batch_payload) -> Batch:
    return batch_service.create_batch(exporter_user, batch_payload)


@pytest.fixture
def inspected_batch(batch_service, qa_user, submitted_batch) -> Batch:
    return batch_service.record_inspection(qa_user, submitted_batch.id, make_inspection())


class FakeTrustAuthority:
    """Stand-in for the external trust authority; forces either strategy branch."""

    def __init__(self, fail: bool = False, verified: Any = True):
        self.fail = fail
        self.verified = verified
        self.issue_calls: List[Dict[str, Any]] = []
        self.verify_calls: List[Dict[str, Any]] = []

    def issue(self, credential_subject, credential_types, expiration_date, access_token):
        self.issue_calls.append({
            "credential_subject": credential_subject,
            "credential_types": credential_types,
            "expiration_date": expiration_date,
            "access_token": access_token,
        })
        if self.fail:
            raise ExternalServiceError("Trust authority returned 503")
        return {
            "id": "urn:uuid:authority-issued",
            "type": credential_types,
            "issuer": "did:web:certify.example",
            "issuanceDate": "2025-10-17T08:00:00Z",
            "expirationDate": expiration_date,
            "credentialSubject": credential_subject,
            "proof": {"type": "Ed25519Signature2020", "proofValue": "z3FXQ..."},
        }

    def verify(self, credential, access_token):
        self.verify_calls.append({"credential": credential, "access_token": access_token})
        if self.fail:
            raise ExternalServiceError("Trust authority unreachable")
        return self.verified


class FakeWallet:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: List[Dict[str, Any]] = []

    def share(self, credential, recipient_email, access_token):
        self.calls.append({"credential": credential, "recipient": recipient_email})
        if self.fail:
            raise ExternalServiceError("Wallet authority returned 500")
        return {"shared": True, "transactionId": "tx-001", "message": "ok"}


def fixed_qr(url: str) -> str:
    return f"data:image/png;base64,{url}"
