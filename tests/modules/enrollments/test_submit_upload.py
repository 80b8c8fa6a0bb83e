"""
Tests for reading receipt uploads in the submission endpoint.
"""

from io import BytesIO

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from registrar.core.storage import ReceiptStorage, StorageValidationError
from registrar.modules.enrollments.router import _read_receipt


def _upload(content: bytes, filename: str = "receipt.png") -> UploadFile:
    return UploadFile(
        file=BytesIO(content),
        filename=filename,
        headers=Headers({"content-type": "image/png"}),
    )


class TestReadReceipt:
    @pytest.mark.asyncio
    async def test_no_upload(self):
        assert await _read_receipt(None, 1024) is None

    @pytest.mark.asyncio
    async def test_small_file_read_whole(self):
        receipt = await _read_receipt(_upload(b"\x89PNG small"), 1024)

        assert receipt.content == b"\x89PNG small"
        assert receipt.filename == "receipt.png"
        assert receipt.content_type == "image/png"

    @pytest.mark.asyncio
    async def test_oversized_file_read_only_past_limit(self, tmp_path):
        """An oversized upload is cut one byte past the limit and still rejected."""
        receipt = await _read_receipt(_upload(b"x" * 10_000), 1024)

        assert len(receipt.content) == 1025
        storage = ReceiptStorage(base_dir=tmp_path, max_bytes=1024)
        with pytest.raises(StorageValidationError, match="too large"):
            storage.validate(receipt.content, receipt.filename, receipt.content_type)
