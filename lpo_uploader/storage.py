"""Scoped temporary storage for uploaded documents.

An upload is spooled to a private temp file for the duration of one request
and deleted on every exit path, including errors and cancellation.
"""

from __future__ import annotations

import contextlib
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from lpo_uploader.errors import InvalidRequestError, PayloadTooLargeError

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class UploadedDocument:
    path: Path
    filename: str
    content_type: str | None
    size: int

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()


@contextlib.asynccontextmanager
async def spool_upload(upload: UploadFile, max_bytes: int) -> AsyncIterator[UploadedDocument]:
    """Copy ``upload`` to a temp file, yield it, always delete it.

    Raises:
        InvalidRequestError: no filename or zero bytes.
        PayloadTooLargeError: more than ``max_bytes`` bytes.
    """
    path: Path | None = None
    try:
        filename = Path(upload.filename or "").name
        if not filename:
            raise InvalidRequestError("Uploaded file has no name", "upload")

        fd, name = tempfile.mkstemp(prefix="lpo-", suffix=Path(filename).suffix)
        path = Path(name)
        size = 0
        with os.fdopen(fd, "wb") as fh:
            while True:
                chunk = await upload.read(_CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > max_bytes:
                    raise PayloadTooLargeError(
                        f"File too large (max {max_bytes} bytes)", "upload"
                    )
                await run_in_threadpool(fh.write, chunk)
        if size == 0:
            raise InvalidRequestError("No file uploaded.", "upload")

        logger.debug("Spooled %s (%d bytes) to %s", filename, size, path)
        yield UploadedDocument(
            path=path,
            filename=filename,
            content_type=upload.content_type,
            size=size,
        )
    finally:
        if path is not None:
            with contextlib.suppress(FileNotFoundError):
                path.unlink()
        await upload.close()
