import io
from datetime import datetime, timedelta
import uuid

import pytest
from fastapi import UploadFile
from pydantic import ValidationError
from sqlmodel import select

from app.core.errors import ServiceError, ErrorCode
from app.db.schema import (
    AuditLog, BatchStatus, DocumentCategory, InspectionResult, InspectionType, UserRole
)
from app.models.batch import InspectionSchedule
from app.services.batch import BatchService
from app.utils.file_storage import save_upload_file, validate_document_extension
from tests.conftest import _user, make_inspection


def test_create_batch_records_submission(session, engine, submitted_batch, exporter_user):
    assert submitted_batch.status == BatchStatus.SUBMITTED
    assert submitted_batch.exporter_id == exporter_user.id
    assert [h.message for h in submitted_batch.history] == ["Batch submitted by exporter"]

    actions = [a.action for a in session.exec(select(AuditLog)).all()]
    assert "batch.submitted" in actions


@pytest.mark.parametrize("role_fixture", ["qa_user", "customs_user"])
def test_only_exporters_and_admins_submit(request, batch_service, batch_payload, role_fixture):
    user = request.getfixturevalue(role_fixture)

    with pytest.raises(ServiceError) as exc:
        batch_service.create_batch(user, batch_payload)
    assert exc.value.code == ErrorCode.FORBIDDEN


def test_passing_inspection_marks_batch_inspected(inspected_batch):
    assert inspected_batch.status == BatchStatus.INSPECTED
    assert inspected_batch.latest_inspection.result == InspectionResult.PASS
    assert inspected_batch.latest_inspection.inspector_org == "Kerala Spice Labs Pvt."
    assert inspected_batch.history[-1].message == "Inspection recorded (PASS)"
    assert inspected_batch.history[-1].status == BatchStatus.INSPECTED


def test_failing_inspection_rejects_batch(batch_service, qa_user, submitted_batch):
    batch = batch_service.record_inspection(
        qa_user, submitted_batch.id, make_inspection(InspectionResult.FAIL, pesticide_ppm=4.2))

    assert batch.status == BatchStatus.REJECTED
    assert batch.history[-1].message == "Inspection recorded (FAIL)"


def test_latest_inspection_wins(batch_service, qa_user, submitted_batch):
    batch_service.record_inspection(qa_user, submitted_batch.id, make_inspection())
    batch = batch_service.record_inspection(
        qa_user, submitted_batch.id, make_inspection(InspectionResult.FAIL, moisture_percent=14.2))

    assert batch.status == BatchStatus.REJECTED
    assert len(batch.inspections) == 2
    assert batch.latest_inspection.result == InspectionResult.FAIL
    assert batch.latest_inspection.moisture_percent == 14.2


def test_exporter_cannot_record_inspection(batch_service, exporter_user, submitted_batch):
    with pytest.raises(ServiceError) as exc:
        batch_service.record_inspection(exporter_user, submitted_batch.id, make_inspection())
    assert exc.value.code == ErrorCode.FORBIDDEN


def test_inspection_on_missing_batch(batch_service, qa_user):
    with pytest.raises(ServiceError) as exc:
        batch_service.record_inspection(qa_user, uuid.uuid4(), make_inspection())
    assert exc.value.code == ErrorCode.NOT_FOUND


@pytest.mark.parametrize("overrides", [
    {"moisture_percent": 101},
    {"moisture_percent": -1},
    {"pesticide_ppm": 10.5},
    {"organic_status": "x"},
    {"iso_code": ""},
])
def test_inspection_bounds(overrides):
    with pytest.raises(ValidationError):
        make_inspection(**overrides)


def test_exporter_only_sees_own_batches(session, audit, batch_service, submitted_batch, batch_payload):
    other = _user(session, "other@exports.test", UserRole.EXPORTER, "Other Exports")
    batch_service.create_batch(other, batch_payload)

    assert len(batch_service.list_batches(other)) == 1
    with pytest.raises(ServiceError) as exc:
        batch_service.get_batch(other, submitted_batch.id)
    assert exc.value.code == ErrorCode.NOT_FOUND


def test_qa_assignment_limits_visibility(session, audit, admin_user, qa_user, other_qa_user, submitted_batch):
    service = BatchService(session, audit, enforce_qa_assignment=True)
    assert service.list_batches(qa_user) == []

    service.assign_qa_agency(admin_user, submitted_batch.id, qa_user.id)

    assert [b.id for b in service.list_batches(qa_user)] == [submitted_batch.id]
    assert service.list_batches(other_qa_user) == []
    assert service.find_visible_batch(other_qa_user, submitted_batch.id) is None


def test_assign_and_schedule(batch_service, admin_user, qa_user, submitted_batch):
    batch = batch_service.assign_qa_agency(admin_user, submitted_batch.id, qa_user.id)
    assert batch.status == BatchStatus.QA_ASSIGNED
    assert batch.history[-1].message == "Assigned to QA agency Kerala Spice Labs Pvt."

    when = datetime.utcnow() + timedelta(days=3)
    batch = batch_service.schedule_inspection(
        qa_user, submitted_batch.id,
        InspectionSchedule(scheduled_at=when, type=InspectionType.PHYSICAL, location="Kochi port"))

    assert batch.status == BatchStatus.INSPECTION_SCHEDULED
    assert batch.inspection_location == "Kochi port"

    batch = batch_service.record_inspection(qa_user, submitted_batch.id, make_inspection())
    assert batch.status == BatchStatus.INSPECTED


def test_assign_requires_admin_and_qa_agency(batch_service, admin_user, qa_user, exporter_user, submitted_batch):
    with pytest.raises(ServiceError) as exc:
        batch_service.assign_qa_agency(qa_user, submitted_batch.id, qa_user.id)
    assert exc.value.code == ErrorCode.FORBIDDEN

    with pytest.raises(ServiceError) as exc:
        batch_service.assign_qa_agency(admin_user, submitted_batch.id, exporter_user.id)
    assert exc.value.code == ErrorCode.NOT_FOUND


def test_schedule_requires_assignment(batch_service, qa_user, submitted_batch):
    with pytest.raises(ServiceError) as exc:
        batch_service.schedule_inspection(
            qa_user, submitted_batch.id, InspectionSchedule(scheduled_at=datetime.utcnow()))
    assert exc.value.code == ErrorCode.INVALID_BATCH_STATE


def test_certified_batch_cannot_be_reinspected(session, batch_service, qa_user, inspected_batch):
    batch_service.mark_certified(inspected_batch, qa_user)
    session.commit()

    with pytest.raises(ServiceError) as exc:
        batch_service.record_inspection(qa_user, inspected_batch.id, make_inspection())
    assert exc.value.code == ErrorCode.INVALID_BATCH_STATE


def test_rejected_batch_cannot_be_reinspected(batch_service, qa_user, submitted_batch):
    batch_service.record_inspection(qa_user, submitted_batch.id, make_inspection(InspectionResult.FAIL))

    with pytest.raises(ServiceError) as exc:
        batch_service.record_inspection(qa_user, submitted_batch.id, make_inspection())
    assert exc.value.code == ErrorCode.INVALID_BATCH_STATE

    batch = batch_service.get_batch(qa_user, submitted_batch.id)
    assert batch.status == BatchStatus.REJECTED
    assert len(batch.inspections) == 1


def test_batch_full_read(batch_service, exporter_user, inspected_batch):
    full = batch_service.get_batch_full(exporter_user, inspected_batch.id)

    assert full.inspection.result == InspectionResult.PASS
    assert [h.message for h in full.history] == [
        "Batch submitted by exporter", "Inspection recorded (PASS)"]
    assert full.documents == []


def _upload(name: str, content: bytes = b"%PDF-1.4") -> UploadFile:
    return UploadFile(file=io.BytesIO(content), filename=name)


def test_append_documents(batch_service, exporter_user, inspected_batch):
    stored = []

    def store(upload):
        stored.append(upload.filename)
        return f"https://files.test/{upload.filename}"

    batch = batch_service.append_documents(
        exporter_user, inspected_batch.id,
        [(_upload("lab.pdf"), DocumentCategory.LAB_REPORTS), (_upload("photo.jpg"), None)],
        store=store,
    )

    assert stored == ["lab.pdf", "photo.jpg"]
    assert {d.category for d in batch.documents} == {
        DocumentCategory.LAB_REPORTS, DocumentCategory.GENERAL}
    assert batch.history[-1].message == "New supporting documents uploaded"
    # History entry carries the status the batch is currently in
    assert batch.history[-1].status == BatchStatus.INSPECTED


def test_append_documents_rejects_other_users(batch_service, qa_user, submitted_batch):
    with pytest.raises(ServiceError) as exc:
        batch_service.append_documents(
            qa_user, submitted_batch.id, [(_upload("lab.pdf"), None)], store=lambda u: "x")
    assert exc.value.code == ErrorCode.NOT_FOUND


def test_append_documents_requires_files(batch_service, exporter_user, submitted_batch):
    with pytest.raises(ServiceError) as exc:
        batch_service.append_documents(exporter_user, submitted_batch.id, [], store=lambda u: "x")
    assert exc.value.code == ErrorCode.VALIDATION_ERROR


def test_save_upload_file(tmp_path):
    url = save_upload_file(_upload("Report.PDF", b"content"), target_dir=tmp_path)

    assert url.endswith(".pdf")
    assert "/static/documents/" in url
    files = list(tmp_path.iterdir())
    assert len(files) == 1
    assert files[0].read_bytes() == b"content"


@pytest.mark.parametrize("name", ["malware.exe", "noextension", ""])
def test_document_extension_validation(name):
    with pytest.raises(ServiceError) as exc:
        validate_document_extension(name)
    assert exc.value.code == ErrorCode.VALIDATION_ERROR
