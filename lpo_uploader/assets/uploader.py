"""Upload documents to the Shopify Files API.

Two transports are supported, selected by ``Settings.transport_mode``:

- ``base64``: the bytes travel inline as a data URL in ``fileCreate``.
- ``staged``: ``stagedUploadsCreate`` returns a signed target, the bytes are
  POSTed there as multipart, and ``fileCreate`` references the staged
  resource URL.

Files are processed asynchronously by Shopify, so ``fileCreate`` may return a
record with no URL yet. ``resolve`` polls the file node with bounded
exponential backoff until it is READY.
"""

from __future__ import annotations

import asyncio
import base64
import logging

from lpo_uploader.assets.mime import content_type_for, resolve_mime
from lpo_uploader.assets.models import AssetKind, AssetReference, AssetStatus
from lpo_uploader.assets.normalizer import normalize
from lpo_uploader.config import Settings
from lpo_uploader.errors import (
    InvalidRequestError,
    MalformedResponseError,
    RejectedError,
    ResolutionTimeoutError,
)
from lpo_uploader.retry import backoff_schedule
from lpo_uploader.shopify.client import ShopifyClient

logger = logging.getLogger(__name__)

_FILE_FIELDS = """
      __typename
      ... on File {
        id
        fileStatus
        alt
        fileErrors { code message }
      }
      ... on GenericFile { url }
      ... on MediaImage { image { url } }
"""

FILE_CREATE_MUTATION = """
mutation fileCreate($files: [FileCreateInput!]!) {
  fileCreate(files: $files) {
    files {%s    }
    userErrors { field message code }
  }
}
""" % _FILE_FIELDS

FILE_NODE_QUERY = """
query fileNode($id: ID!) {
  node(id: $id) {%s  }
}
""" % _FILE_FIELDS

STAGED_UPLOADS_MUTATION = """
mutation stagedUploadsCreate($input: [StagedUploadInput!]!) {
  stagedUploadsCreate(input: $input) {
    stagedTargets {
      url
      resourceUrl
      parameters { name value }
    }
    userErrors { field message }
  }
}
"""


class AssetUploader:
    """Sends raw bytes to Shopify and returns normalized references."""

    def __init__(self, settings: Settings, client: ShopifyClient):
        self._settings = settings
        self._client = client

    async def upload(
        self,
        data: bytes,
        filename: str,
        mime_type: str | None = None,
    ) -> AssetReference:
        """Create a file on the platform.

        The returned reference may still be PROCESSING (or FAILED); use
        ``ensure_ready`` before linking it.

        Raises:
            InvalidRequestError: empty bytes or filename.
            TransportError / RateLimitedError: after retries.
            RejectedError: platform userErrors.
            MalformedResponseError: missing envelope or file record.
        """
        if not data:
            raise InvalidRequestError("File is empty", "upload")
        filename = (filename or "").strip()
        if not filename:
            raise InvalidRequestError("Filename is required", "upload")
        mime_type = resolve_mime(data, filename, mime_type)

        if self._settings.transport_mode == "staged":
            source = await self._stage(data, filename, mime_type)
        else:
            encoded = base64.b64encode(data).decode("ascii")
            source = f"data:{mime_type};base64,{encoded}"

        variables = {
            "files": [
                {
                    "originalSource": source,
                    "alt": self._settings.file_alt,
                    "contentType": content_type_for(mime_type),
                    "filename": filename,
                }
            ]
        }
        # fileCreate is not idempotent; a retried timeout could store the file twice
        result = await self._client.execute(
            FILE_CREATE_MUTATION, variables, "upload", retry_timeouts=False
        )

        payload = result.get("fileCreate")
        if not isinstance(payload, dict):
            raise MalformedResponseError(
                "fileCreate payload missing", "upload", payload_hint=",".join(sorted(result))
            )
        user_errors = payload.get("userErrors") or []
        if user_errors:
            raise RejectedError.from_user_errors(user_errors, "upload")

        files = payload.get("files")
        if not isinstance(files, list) or not files:
            raise MalformedResponseError("fileCreate returned no file record", "upload")

        reference = normalize(files[0], "upload")
        logger.info(
            "Uploaded %s (%d bytes, %s) -> %s %s",
            filename,
            len(data),
            mime_type,
            reference.kind.value,
            reference.status.value,
        )
        return reference

    async def _stage(self, data: bytes, filename: str, mime_type: str) -> str:
        variables = {
            "input": [
                {
                    "filename": filename,
                    "mimeType": mime_type,
                    "resource": "IMAGE" if content_type_for(mime_type) == "IMAGE" else "FILE",
                    "httpMethod": "POST",
                    "fileSize": str(len(data)),
                }
            ]
        }
        result = await self._client.execute(STAGED_UPLOADS_MUTATION, variables, "upload")
        payload = result.get("stagedUploadsCreate")
        if not isinstance(payload, dict):
            raise MalformedResponseError("stagedUploadsCreate payload missing", "upload")
        user_errors = payload.get("userErrors") or []
        if user_errors:
            raise RejectedError.from_user_errors(user_errors, "upload")

        targets = payload.get("stagedTargets") or []
        target = targets[0] if targets and isinstance(targets[0], dict) else {}
        url = target.get("url")
        resource_url = target.get("resourceUrl")
        if not url or not resource_url:
            raise MalformedResponseError("Staged target has no upload URL", "upload")

        await self._client.upload_to_staged_target(target, data, filename, mime_type)
        logger.debug("Staged %s at %s", filename, resource_url)
        return resource_url

    async def resolve(self, identifier: str) -> str:
        """Poll a processing file until it has a URL.

        Raises:
            ResolutionTimeoutError: still processing after the attempt budget.
            RejectedError: the platform reports the file failed or is gone.
        """
        s = self._settings
        attempts = max(s.resolve_attempts, 1)
        delays = backoff_schedule(attempts, s.resolve_base_delay, s.resolve_max_delay)

        for attempt in range(attempts):
            result = await self._client.execute(FILE_NODE_QUERY, {"id": identifier}, "resolve")
            if "node" not in result:
                raise MalformedResponseError("node query returned no node field", "resolve")
            node = result["node"]
            if node is None:
                raise RejectedError(f"File {identifier} not found", "resolve")

            reference = normalize(node, "resolve")
            if reference.status is AssetStatus.READY:
                logger.info("Resolved %s after %d attempt(s)", identifier, attempt + 1)
                return reference.locator
            if reference.status is AssetStatus.FAILED:
                raise _failure_error(reference, "resolve")

            if attempt < len(delays):
                logger.info(
                    "File %s still processing (attempt %d/%d), waiting %.1fs",
                    identifier,
                    attempt + 1,
                    attempts,
                    delays[attempt],
                )
                await asyncio.sleep(delays[attempt])

        raise ResolutionTimeoutError(identifier, attempts)

    async def ensure_ready(self, reference: AssetReference) -> AssetReference:
        """Return a READY reference, resolving it if still processing."""
        if reference.status is AssetStatus.READY:
            return reference
        if reference.status is AssetStatus.FAILED:
            raise _failure_error(reference, "upload")
        locator = await self.resolve(reference.identifier)
        return AssetReference(
            kind=reference.kind,
            status=AssetStatus.READY,
            locator=locator,
            identifier=reference.identifier,
            discriminator=reference.discriminator,
        )

    async def upload_ready(
        self,
        data: bytes,
        filename: str,
        mime_type: str | None = None,
    ) -> AssetReference:
        """Upload and wait until the file has a usable URL."""
        return await self.ensure_ready(await self.upload(data, filename, mime_type))


def _failure_error(reference: AssetReference, operation: str) -> Exception:
    if reference.kind is AssetKind.UNKNOWN:
        return MalformedResponseError(
            f"Unsupported file type {reference.discriminator!r}",
            operation,
            payload_hint=str(reference.discriminator),
        )
    message = reference.errors[0] if reference.errors else "File processing failed"
    return RejectedError(
        message,
        operation,
        details=[{"field": None, "message": m} for m in reference.errors],
    )
