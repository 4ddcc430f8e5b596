"""Normalize Shopify file records into AssetReference.

The Files API returns a record whose shape depends on the file subtype
(``__typename``) and on whether processing has finished. Field names have
also moved between API versions:

- GenericFile: ``url`` (older versions: ``originalFileUrl``)
- MediaImage:  ``image.url`` (older versions: ``image.originalSrc`` or
  ``image.src``), with ``preview.image.url`` as a last resort
- ``fileStatus``: UPLOADED / PROCESSING / READY / FAILED

Unknown subtypes normalize to FAILED with the discriminator preserved.
Pure functions only: no I/O.
"""

from __future__ import annotations

import logging
from typing import Any

from lpo_uploader.assets.models import AssetKind, AssetReference, AssetStatus
from lpo_uploader.errors import MalformedResponseError

logger = logging.getLogger(__name__)

_PROCESSING_STATUSES = {"UPLOADED", "PROCESSING"}


def normalize(record: Any, operation: str = "upload") -> AssetReference:
    """Map one file record from ``fileCreate`` or ``node`` into a reference.

    Raises:
        MalformedResponseError: record is not an object, or a READY record
            of a known kind has neither a URL nor an id to resolve it by.
    """
    if not isinstance(record, dict):
        raise MalformedResponseError(
            "File record is not an object", operation, payload_hint=type(record).__name__
        )

    typename = record.get("__typename")
    identifier = str(record.get("id") or "")

    if typename == AssetKind.GENERIC_FILE.value:
        return _normalize_known(
            AssetKind.GENERIC_FILE, record, identifier, _generic_file_url(record), operation
        )
    if typename == AssetKind.MEDIA_IMAGE.value:
        return _normalize_known(
            AssetKind.MEDIA_IMAGE, record, identifier, _media_image_url(record), operation
        )

    logger.warning("Unknown file subtype %r for %s", typename, identifier or "<no id>")
    return AssetReference(
        kind=AssetKind.UNKNOWN,
        status=AssetStatus.FAILED,
        identifier=identifier,
        discriminator=typename if isinstance(typename, str) else None,
        errors=(f"Unsupported file type: {typename!r}",),
    )


def _normalize_known(
    kind: AssetKind,
    record: dict,
    identifier: str,
    url: str,
    operation: str,
) -> AssetReference:
    raw_status = str(record.get("fileStatus") or "").upper()

    if raw_status == "FAILED":
        return AssetReference(
            kind=kind,
            status=AssetStatus.FAILED,
            identifier=identifier,
            discriminator=kind.value,
            errors=_file_errors(record),
        )

    if url and raw_status not in _PROCESSING_STATUSES:
        return AssetReference(
            kind=kind,
            status=AssetStatus.READY,
            locator=url,
            identifier=identifier,
            discriminator=kind.value,
        )

    # No URL yet, or the platform says processing has not finished
    if not identifier:
        raise MalformedResponseError(
            f"{kind.value} record has neither url nor id",
            operation,
            payload_hint=",".join(sorted(record)),
        )
    return AssetReference(
        kind=kind,
        status=AssetStatus.PROCESSING,
        identifier=identifier,
        discriminator=kind.value,
    )


def _generic_file_url(record: dict) -> str:
    return _first_str(record.get("url"), record.get("originalFileUrl"))


def _media_image_url(record: dict) -> str:
    image = _as_dict(record.get("image"))
    preview = _as_dict(_as_dict(record.get("preview")).get("image"))
    return _first_str(
        image.get("url"),
        image.get("originalSrc"),
        image.get("src"),
        preview.get("url"),
    )


def _file_errors(record: dict) -> tuple[str, ...]:
    errors = record.get("fileErrors") or []
    if not isinstance(errors, list):
        return ()
    out = []
    for err in errors:
        if isinstance(err, dict):
            out.append(str(err.get("message") or err.get("code") or "unknown error"))
        else:
            out.append(str(err))
    return tuple(out)


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _first_str(*values: Any) -> str:
    for value in values:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""
