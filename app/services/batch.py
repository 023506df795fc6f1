import uuid
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Tuple
from fastapi import UploadFile
from loguru import logger
from sqlmodel import Session, select

from app.core.audit import AuditLogger
from app.core.config import settings
from app.core.errors import ServiceError, ErrorCode
from app.db.schema import (
    User, UserRole, Batch, BatchStatus, BatchHistory, BatchDocument,
    DocumentCategory, Inspection, InspectionResult
)
from app.models.batch import (
    BatchCreate, BatchFullRead, InspectionCreate, InspectionSchedule
)
from app.utils.file_storage import save_upload_file


INSPECTOR_ROLES = {UserRole.QA, UserRole.ADMIN}


class BatchService:
    """
    Batch lifecycle state machine.

    SUBMITTED -> [QA_ASSIGNED -> INSPECTION_SCHEDULED] -> INSPECTED | REJECTED
    INSPECTED -> CERTIFIED (driven by the credential issuance engine)
    """

    def __init__(
        self,
        session: Session,
        audit: AuditLogger,
        enforce_qa_assignment: Optional[bool] = None
    ):
        self.session = session
        self.audit = audit
        self.enforce_qa_assignment = (
            settings.enforce_qa_assignment
            if enforce_qa_assignment is None else enforce_qa_assignment
        )

    # ==========================================================================
    # VISIBILITY
    # ==========================================================================

    def can_view(self, user: User, batch: Optional[Batch]) -> bool:
        if batch is None:
            return False
        if user.role == UserRole.ADMIN:
            return True
        if user.role == UserRole.QA:
            if self.enforce_qa_assignment:
                return batch.qa_agency_id == user.id
            return True
        return batch.exporter_id == user.id

    def _require_role(self, user: User, roles: Iterable[UserRole], action: str):
        if user.role not in roles:
            logger.warning(
                f"Forbidden: user {user.id} ({user.role.value}) tried to {action}")
            raise ServiceError(
                ErrorCode.FORBIDDEN, f"Your role is not allowed to {action}.")

    def find_visible_batch(
        self, user: User, batch_id: uuid.UUID, lock: bool = False
    ) -> Optional[Batch]:
        """
        Returns the batch if it exists AND the user may see it, else None.
        With lock=True the row is selected FOR UPDATE (ignored by SQLite) and
        reloaded over whatever the session already holds.
        """
        statement = select(Batch).where(Batch.id == batch_id)
        if lock:
            statement = statement.with_for_update().execution_options(populate_existing=True)
        batch = self.session.exec(statement).first()
        return batch if self.can_view(user, batch) else None

    def get_batch(self, user: User, batch_id: uuid.UUID) -> Batch:
        batch = self.find_visible_batch(user, batch_id)
        # Missing and invisible are deliberately indistinguishable
        if not batch:
            raise ServiceError(ErrorCode.NOT_FOUND, "Batch not found.")
        return batch

    # ==========================================================================
    # READ OPERATIONS
    # ==========================================================================

    def list_batches(self, user: User) -> List[Batch]:
        statement = select(Batch)

        if user.role == UserRole.QA and self.enforce_qa_assignment:
            statement = statement.where(Batch.qa_agency_id == user.id)
        elif user.role not in INSPECTOR_ROLES:
            statement = statement.where(Batch.exporter_id == user.id)

        statement = statement.order_by(Batch.created_at.desc())
        return list(self.session.exec(statement).all())

    def get_batch_full(self, user: User, batch_id: uuid.UUID) -> BatchFullRead:
        batch = self.get_batch(user, batch_id)

        data = batch.model_dump()
        data.update(
            inspection=batch.latest_inspection,
            history=batch.history,
            documents=batch.documents,
        )
        return BatchFullRead.model_validate(data)

    # ==========================================================================
    # WRITE OPERATIONS
    # ==========================================================================

    def _append_history(self, batch: Batch, message: str, at: Optional[datetime] = None):
        batch.history.append(
            BatchHistory(
                status=batch.status,
                message=message,
                created_at=at or datetime.utcnow()
            )
        )

    def create_batch(self, user: User, data: BatchCreate) -> Batch:
        self._require_role(
            user, {UserRole.EXPORTER, UserRole.ADMIN}, "submit batches")

        batch = Batch(
            exporter_id=user.id,
            status=BatchStatus.SUBMITTED,
            **data.model_dump()
        )
        self._append_history(batch, "Batch submitted by exporter")

        try:
            self.session.add(batch)
            self.session.commit()
            self.session.refresh(batch)
        except Exception as e:
            self.session.rollback()
            logger.error(f"Batch creation failed: {e}")
            raise ServiceError(ErrorCode.INTERNAL_ERROR, "Could not create batch.")

        logger.info(f"Batch {batch.id} submitted by {user.id}")
        self.audit.record(
            "batch.submitted",
            actor_id=user.id,
            role=user.role.value,
            entity_type="BATCH",
            entity_id=batch.id,
            details={"productType": batch.product_type},
        )
        return batch

    def append_documents(
        self,
        user: User,
        batch_id: uuid.UUID,
        uploads: List[Tuple[UploadFile, DocumentCategory]],
        store: Optional[Callable[[UploadFile], str]] = None,
    ) -> Batch:
        """
        Attaches supporting documents. Only the owning exporter or an admin may
        upload; the history entry carries the batch's current status.
        """
        batch = self.session.get(Batch, batch_id)
        if not batch or (batch.exporter_id != user.id and user.role != UserRole.ADMIN):
            raise ServiceError(ErrorCode.NOT_FOUND, "Batch not found.")

        if not uploads:
            raise ServiceError(
                ErrorCode.VALIDATION_ERROR, "At least one document is required.")

        store = store or save_upload_file
        now = datetime.utcnow()
        for upload, category in uploads:
            url = store(upload)
            batch.documents.append(
                BatchDocument(
                    original_name=upload.filename or "unknown",
                    mime_type=upload.content_type,
                    size=getattr(upload, "size", None),
                    url=url,
                    category=category or DocumentCategory.GENERAL,
                    uploaded_at=now,
                )
            )

        batch.updated_at = now
        self._append_history(batch, "New supporting documents uploaded", at=now)

        try:
            self.session.add(batch)
            self.session.commit()
            self.session.refresh(batch)
        except Exception as e:
            self.session.rollback()
            logger.error(f"Document upload for batch {batch_id} failed: {e}")
            raise ServiceError(ErrorCode.INTERNAL_ERROR, "Could not attach documents.")

        return batch

    def assign_qa_agency(self, user: User, batch_id: uuid.UUID, agency_id: uuid.UUID) -> Batch:
        """
        Manually assigns a QA agency. Matching heuristics live elsewhere;
        this only records the decision.
        """
        self._require_role(user, {UserRole.ADMIN}, "assign QA agencies")
        batch = self.get_batch(user, batch_id)

        if batch.status not in (BatchStatus.SUBMITTED, BatchStatus.QA_ASSIGNED):
            raise ServiceError(
                ErrorCode.INVALID_BATCH_STATE,
                f"Cannot assign a QA agency to a batch in status {batch.status.value}."
            )

        agency = self.session.get(User, agency_id)
        if not agency or agency.role != UserRole.QA or not agency.is_active:
            raise ServiceError(ErrorCode.NOT_FOUND, "QA agency not found.")

        batch.qa_agency_id = agency.id
        batch.status = BatchStatus.QA_ASSIGNED
        batch.updated_at = datetime.utcnow()
        self._append_history(
            batch, f"Assigned to QA agency {agency.organization or agency.email}")

        self.session.add(batch)
        self.session.commit()
        self.session.refresh(batch)

        self.audit.record(
            "batch.assigned",
            actor_id=user.id,
            role=user.role.value,
            entity_type="BATCH",
            entity_id=batch.id,
            details={"qaAgencyId": str(agency.id)},
        )
        return batch

    def schedule_inspection(
        self, user: User, batch_id: uuid.UUID, data: InspectionSchedule
    ) -> Batch:
        self._require_role(user, INSPECTOR_ROLES, "schedule inspections")
        batch = self.get_batch(user, batch_id)

        if batch.status not in (BatchStatus.QA_ASSIGNED, BatchStatus.INSPECTION_SCHEDULED):
            raise ServiceError(
                ErrorCode.INVALID_BATCH_STATE,
                "Only batches assigned to a QA agency can be scheduled."
            )

        batch.inspection_scheduled_at = data.scheduled_at
        batch.inspection_type = data.type
        batch.inspection_location = data.location
        batch.status = BatchStatus.INSPECTION_SCHEDULED
        batch.updated_at = datetime.utcnow()
        self._append_history(
            batch, f"Inspection scheduled for {data.scheduled_at.isoformat()}")

        self.session.add(batch)
        self.session.commit()
        self.session.refresh(batch)
        return batch

    def record_inspection(
        self, user: User, batch_id: uuid.UUID, data: InspectionCreate
    ) -> Batch:
        """
        Records inspection findings and derives the batch status from them.
        Inspection row, status change and history entry commit together.
        """
        self._require_role(user, INSPECTOR_ROLES, "record inspections")
        batch = self.get_batch(user, batch_id)

        if batch.status == BatchStatus.CERTIFIED:
            raise ServiceError(
                ErrorCode.INVALID_BATCH_STATE,
                "Batch is already certified; revoke-and-reissue is not a re-inspection."
            )
        if batch.status == BatchStatus.REJECTED:
            raise ServiceError(
                ErrorCode.INVALID_BATCH_STATE,
                "Batch was rejected at inspection; submit a new batch instead."
            )

        now = datetime.utcnow()
        inspection = Inspection(
            inspector_id=user.id,
            inspector_org=user.organization or user.email,
            recorded_at=now,
            **data.model_dump()
        )
        batch.inspections.append(inspection)

        batch.status = (
            BatchStatus.INSPECTED
            if data.result == InspectionResult.PASS
            else BatchStatus.REJECTED
        )
        batch.updated_at = now
        self._append_history(
            batch, f"Inspection recorded ({data.result.value})", at=now)

        try:
            self.session.add(batch)
            self.session.commit()
            self.session.refresh(batch)
        except Exception as e:
            self.session.rollback()
            logger.error(f"Inspection recording failed for batch {batch_id}: {e}")
            raise ServiceError(ErrorCode.INTERNAL_ERROR, "Could not record inspection.")

        logger.info(
            f"Inspection {data.result.value} recorded for batch {batch.id} by {user.id}")
        self.audit.record(
            "inspection.recorded",
            actor_id=user.id,
            role=user.role.value,
            entity_type="BATCH",
            entity_id=batch.id,
            details={"result": data.result.value},
        )
        return batch

    def mark_certified(self, batch: Batch, user: User) -> None:
        """
        Moves the batch to CERTIFIED inside the caller's open transaction.
        The caller commits.
        """
        now = datetime.utcnow()
        batch.status = BatchStatus.CERTIFIED
        batch.updated_at = now
        self._append_history(
            batch, f"Credential issued by {user.organization or 'QA Team'}", at=now)
        self.session.add(batch)
