from typing import List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from app.core.dependencies import get_current_user, get_batch_service
from app.services.batch import BatchService
from app.db.schema import User, DocumentCategory
from app.models.batch import (
    BatchCreate, BatchRead, BatchFullRead,
    InspectionCreate, InspectionSchedule, QAAssignment
)

router = APIRouter()


@router.get(
    "/",
    response_model=List[BatchRead],
    status_code=status.HTTP_200_OK,
    summary="List Batches",
    description="Admins and QA agencies see every batch they may inspect; exporters see their own."
)
def list_batches(
    current_user: User = Depends(get_current_user),
    service: BatchService = Depends(get_batch_service)
):
    return service.list_batches(current_user)


@router.post(
    "/",
    response_model=BatchRead,
    status_code=status.HTTP_201_CREATED,
    summary="Submit Batch",
    description="Submits a new export batch for quality certification."
)
def create_batch(
    payload: BatchCreate,
    current_user: User = Depends(get_current_user),
    service: BatchService = Depends(get_batch_service)
):
    return service.create_batch(current_user, payload)


@router.get(
    "/{batch_id}",
    response_model=BatchFullRead,
    summary="Get Batch",
    description="Returns the batch with its latest inspection, timeline and documents."
)
def get_batch(
    batch_id: UUID,
    current_user: User = Depends(get_current_user),
    service: BatchService = Depends(get_batch_service)
):
    return service.get_batch_full(current_user, batch_id)


@router.post(
    "/{batch_id}/documents",
    response_model=BatchFullRead,
    summary="Upload Documents",
    description="Attaches supporting documents (lab reports, photos, compliance files)."
)
def upload_documents(
    batch_id: UUID,
    files: List[UploadFile] = File(...),
    category: Optional[DocumentCategory] = Form(default=None),
    current_user: User = Depends(get_current_user),
    service: BatchService = Depends(get_batch_service)
):
    """
    All files in one request share a category; omitted means GENERAL.
    """
    uploads = [(f, category or DocumentCategory.GENERAL) for f in files]
    service.append_documents(current_user, batch_id, uploads)
    return service.get_batch_full(current_user, batch_id)


@router.post(
    "/{batch_id}/assign",
    response_model=BatchRead,
    summary="Assign QA Agency",
    tags=["QA"]
)
def assign_qa_agency(
    batch_id: UUID,
    payload: QAAssignment,
    current_user: User = Depends(get_current_user),
    service: BatchService = Depends(get_batch_service)
):
    return service.assign_qa_agency(current_user, batch_id, payload.agency_id)


@router.post(
    "/{batch_id}/schedule",
    response_model=BatchRead,
    summary="Schedule Inspection",
    tags=["QA"]
)
def schedule_inspection(
    batch_id: UUID,
    payload: InspectionSchedule,
    current_user: User = Depends(get_current_user),
    service: BatchService = Depends(get_batch_service)
):
    return service.schedule_inspection(current_user, batch_id, payload)


@router.post(
    "/{batch_id}/inspection",
    response_model=BatchFullRead,
    summary="Record Inspection",
    description="Records QA findings. PASS moves the batch to INSPECTED, FAIL to REJECTED.",
    tags=["QA"]
)
def record_inspection(
    batch_id: UUID,
    payload: InspectionCreate,
    current_user: User = Depends(get_current_user),
    service: BatchService = Depends(get_batch_service)
):
    service.record_inspection(current_user, batch_id, payload)
    return service.get_batch_full(current_user, batch_id)
