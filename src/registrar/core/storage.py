"""
Receipt Storage

Local-disk storage for payment receipts attached to enrollment requests.
Files are validated (type and size limits come from settings) and written
under UPLOAD_DIR with a generated name; the returned reference is the stored
file name, which is what enrollment requests keep.
"""

import asyncio
import logging
import secrets
import time
from pathlib import Path

from registrar.core.config import settings

logger = logging.getLogger(__name__)

# Extension -> MIME type accepted for that extension
RECEIPT_MIME_TYPES: dict[str, str] = {
    "jpeg": "image/jpeg",
    "jpg": "image/jpeg",
    "png": "image/png",
    "pdf": "application/pdf",
}


class StorageValidationError(ValueError):
    """Raised when an uploaded file breaks the type or size rules."""


class ReceiptStorage:
    """Stores receipt files on the local filesystem."""

    def __init__(
        self,
        base_dir: str | Path | None = None,
        max_bytes: int | None = None,
        allowed_extensions: set[str] | None = None,
    ):
        self.base_dir = Path(base_dir or settings.upload_dir)
        self.max_bytes = max_bytes if max_bytes is not None else settings.receipt_max_bytes
        self.allowed_extensions = allowed_extensions or settings.receipt_allowed_extensions

    def validate(self, file_bytes: bytes, suggested_name: str, content_type: str | None) -> str:
        """
        Check the file against the configured limits.

        Returns:
            The normalized extension, including the leading dot

        Raises:
            StorageValidationError: On empty, oversized or disallowed files
        """
        if not file_bytes:
            raise StorageValidationError("Receipt file is empty")

        if len(file_bytes) > self.max_bytes:
            raise StorageValidationError(
                f"Receipt file is too large ({len(file_bytes)} bytes). "
                f"Maximum allowed is {self.max_bytes} bytes"
            )

        extension = Path(suggested_name or "").suffix.lower().lstrip(".")
        if extension not in self.allowed_extensions or extension not in RECEIPT_MIME_TYPES:
            raise StorageValidationError(
                "Only image (jpeg, jpg, png) and PDF receipts are allowed"
            )

        if content_type and content_type.lower() != RECEIPT_MIME_TYPES[extension]:
            raise StorageValidationError(
                f"Receipt content type {content_type} does not match .{extension}"
            )

        return f".{extension}"

    @staticmethod
    def _generate_name(extension: str) -> str:
        return f"receipt-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{extension}"

    async def store_receipt(
        self,
        file_bytes: bytes,
        suggested_name: str,
        content_type: str | None = None,
    ) -> str:
        """
        Validate and persist a receipt.

        Args:
            file_bytes: Raw file content
            suggested_name: Client-side file name (only its extension is used)
            content_type: MIME type reported by the client, if any

        Returns:
            Receipt reference (the stored file name)

        Raises:
            StorageValidationError: If validation fails
        """
        extension = self.validate(file_bytes, suggested_name, content_type)
        name = self._generate_name(extension)
        path = self.base_dir / name

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(file_bytes)

        await asyncio.to_thread(_write)
        logger.info(f"Stored receipt {name} ({len(file_bytes)} bytes)")
        return name

    async def delete_receipt(self, reference: str) -> None:
        """Remove a stored receipt; a missing file is not an error."""
        path = self.base_dir / Path(reference).name
        await asyncio.to_thread(path.unlink, missing_ok=True)
        logger.info(f"Deleted receipt {reference}")


def get_receipt_storage() -> ReceiptStorage:
    """FastAPI dependency returning storage configured from settings."""
    return ReceiptStorage()
