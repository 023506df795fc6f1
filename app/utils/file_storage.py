import os
import shutil
import uuid
from pathlib import Path
from fastapi import UploadFile
from loguru import logger

from app.core.config import settings
from app.core.errors import ServiceError, ErrorCode


# Define storage location (using Path for OS agnostic handling)
DOCUMENT_DIR = Path(settings.static_dir) / "documents"
DOCUMENT_URL_PREFIX = "/static/documents"

# Allowed file extensions for supporting batch documents
ALLOWED_DOCUMENT_EXTENSIONS = {
    # Document formats
    "pdf",  # Lab reports, phytosanitary certificates
    "doc", "docx",  # Microsoft Word
    "xls", "xlsx",  # Microsoft Excel
    "csv",  # Lab instrument exports
    "txt",  # Plain text
    "odt", "ods",  # OpenDocument formats
    # Image formats
    "png", "jpg", "jpeg",  # Packaging photos
    "webp",
}


def validate_document_extension(filename: str) -> str:
    """
    Validates that the file extension is allowed for batch documents and
    returns the normalized extension.
    """
    if not filename:
        raise ServiceError(
            ErrorCode.VALIDATION_ERROR,
            "Filename is required for document uploads."
        )

    # Extract extension (case-insensitive)
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""

    if not ext:
        raise ServiceError(
            ErrorCode.VALIDATION_ERROR,
            "File must have an extension. Allowed extensions: " +
            ", ".join(sorted(ALLOWED_DOCUMENT_EXTENSIONS))
        )

    if ext not in ALLOWED_DOCUMENT_EXTENSIONS:
        raise ServiceError(
            ErrorCode.VALIDATION_ERROR,
            f"File extension '.{ext}' is not allowed. Allowed extensions: {', '.join(sorted(ALLOWED_DOCUMENT_EXTENSIONS))}"
        )

    return ext


def save_upload_file(upload_file: UploadFile, target_dir: Path = DOCUMENT_DIR) -> str:
    """
    Saves a binary UploadFile stream to the static documents directory
    and returns the public URL.
    """
    ext = validate_document_extension(upload_file.filename or "")

    os.makedirs(target_dir, exist_ok=True)

    unique_name = f"{uuid.uuid4()}.{ext}"
    file_path = Path(target_dir) / unique_name

    try:
        with open(file_path, "wb") as buffer:
            shutil.copyfileobj(upload_file.file, buffer)

        # e.g. http://localhost:8000/static/documents/uuid.pdf
        return f"{settings.public_url}{DOCUMENT_URL_PREFIX}/{unique_name}"

    except Exception as e:
        logger.error(f"Error saving document {upload_file.filename}: {e}")
        raise
