"""
InvoiceFlow - File Storage Service

Local storage for uploaded invoice documents.

Layout: <storage root>/invoices/<year>/<month>/<unique id>_<safe filename>
"""

import asyncio
import hashlib
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from invoiceflow.config import settings
from invoiceflow.services.ocr_service import FileMeta
from invoiceflow.utils.error_handling import ErrorCode, ValidationException

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {
    "application/pdf",
    "image/jpeg",
    "image/png",
    "image/tiff",
    "image/bmp",
}


class FileStorageService:
    """Stores invoice documents on the local filesystem."""

    def __init__(self, root: Optional[str] = None, max_size_mb: Optional[int] = None):
        self.local_storage_path = Path(root or settings.storage_local_path)
        self.max_size_bytes = (max_size_mb or settings.max_upload_size_mb) * 1024 * 1024

    def _generate_relative_path(self, original_filename: str) -> Path:
        """Unique, sanitised path under the storage root."""
        now = datetime.now(timezone.utc)
        file_id = uuid.uuid4().hex[:12]
        safe_filename = "".join(
            c if c.isalnum() or c in ".-_" else "_"
            for c in Path(original_filename or "document").name
        )
        return Path("invoices") / str(now.year) / f"{now.month:02d}" / f"{file_id}_{safe_filename}"

    def validate_upload(self, file_content: bytes, content_type: str) -> None:
        """
        Raises:
            ValidationException: Empty, oversized or unsupported file
        """
        if not file_content:
            raise ValidationException("Uploaded file is empty", field="file", code=ErrorCode.INVALID_FILE)
        if len(file_content) > self.max_size_bytes:
            raise ValidationException(
                f"File exceeds the {self.max_size_bytes // (1024 * 1024)} MB limit",
                field="file",
                code=ErrorCode.INVALID_FILE,
            )
        if content_type not in ALLOWED_CONTENT_TYPES:
            raise ValidationException(
                f"Unsupported file type '{content_type}'",
                field="file",
                code=ErrorCode.INVALID_FILE,
                details={"allowed": sorted(ALLOWED_CONTENT_TYPES)},
            )

    async def save(self, file_content: bytes, filename: str, content_type: str) -> FileMeta:
        """Write the document to disk and describe where it went."""
        relative_path = self._generate_relative_path(filename)
        file_path = self.local_storage_path / relative_path
        await asyncio.to_thread(self._write, file_path, file_content)

        logger.info(
            f"Stored {filename} ({len(file_content)} bytes, "
            f"sha256 {hashlib.sha256(file_content).hexdigest()[:12]}) at {relative_path}"
        )
        return FileMeta(
            path=relative_path.as_posix(),
            name=filename,
            content_type=content_type,
            size=len(file_content),
        )

    @staticmethod
    def _write(file_path: Path, file_content: bytes) -> None:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(file_path, "wb") as f:
            f.write(file_content)

    def resolve(self, relative_path: str) -> Path:
        """Absolute path of a stored document; refuses paths outside the root."""
        root = self.local_storage_path.resolve()
        full_path = (root / relative_path).resolve()
        if root not in full_path.parents:
            raise ValidationException("Invalid file path", field="file_path")
        return full_path

    async def delete(self, relative_path: str) -> bool:
        """Remove a stored document. Returns False if it was already gone."""
        file_path = self.resolve(relative_path)
        if not file_path.exists():
            return False
        await asyncio.to_thread(file_path.unlink)
        return True
