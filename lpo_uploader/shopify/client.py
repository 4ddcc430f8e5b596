"""Shopify GraphQL Admin API transport.

All platform calls go through ``ShopifyClient.execute``, which maps HTTP and
GraphQL failures onto the error taxonomy and retries transport failures and
throttling with exponential backoff. The staged-upload target (a signed
storage URL, not the Admin API) is reached through ``upload_to_staged_target``.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from lpo_uploader.config import Settings
from lpo_uploader.errors import (
    MalformedResponseError,
    RateLimitedError,
    RejectedError,
    TransportError,
)
from lpo_uploader.retry import retry_async

logger = logging.getLogger(__name__)


class ShopifyClient:
    """Async GraphQL Admin API client bound to one store."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None):
        self._settings = settings
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=settings.request_timeout)

    async def __aenter__(self) -> ShopifyClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def execute(
        self,
        query: str,
        variables: dict | None = None,
        operation: str = "",
        retry_timeouts: bool = True,
    ) -> dict[str, Any]:
        """Run a GraphQL document and return its ``data`` object.

        With ``retry_timeouts=False`` a timed-out request is not retried:
        the platform may already have applied a non-idempotent mutation.
        Connection failures and throttling are still retried.
        """
        s = self._settings
        return await retry_async(
            lambda: self._execute_once(query, variables or {}, operation, retry_timeouts),
            max_retries=s.max_retries,
            base_delay=s.retry_base_delay,
            max_delay=s.retry_max_delay,
            label=operation or "graphql",
        )

    async def _execute_once(
        self, query: str, variables: dict, operation: str, retry_timeouts: bool = True
    ) -> dict[str, Any]:
        try:
            response = await self._http.post(
                self._settings.graphql_endpoint,
                json={"query": query, "variables": variables},
                headers={
                    "X-Shopify-Access-Token": self._settings.access_token,
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
            )
        except httpx.TimeoutException as e:
            err = TransportError(f"Timed out calling Shopify: {e}", operation)
            err.retryable = retry_timeouts
            raise err from e
        except httpx.HTTPError as e:
            raise TransportError(
                f"Network error calling Shopify: {type(e).__name__}", operation
            ) from e

        _raise_for_status(response, operation)

        try:
            body = response.json()
        except ValueError as e:
            raise MalformedResponseError(
                "Shopify returned a non-JSON body", operation,
                payload_hint=response.headers.get("content-type", ""),
            ) from e
        if not isinstance(body, dict):
            raise MalformedResponseError(
                "Shopify returned a non-object body", operation,
                payload_hint=type(body).__name__,
            )

        errors = body.get("errors")
        if errors:
            _raise_graphql_errors(errors, response, operation)

        data = body.get("data")
        if not isinstance(data, dict):
            raise MalformedResponseError(
                "Response has no data envelope", operation,
                payload_hint=",".join(sorted(body)),
            )

        cost = (body.get("extensions") or {}).get("cost") or {}
        if cost:
            logger.debug(
                "%s cost requested=%s actual=%s",
                operation,
                cost.get("requestedQueryCost"),
                cost.get("actualQueryCost"),
            )
        return data

    async def upload_to_staged_target(
        self,
        target: dict[str, Any],
        data: bytes,
        filename: str,
        mime_type: str,
    ) -> None:
        """Multipart POST of the file bytes to a ``stagedUploadsCreate`` target.

        The target's signed ``parameters`` go first as form fields, the file
        part last. The target key is fixed, so a retried POST overwrites.
        """
        url = target.get("url")
        if not url:
            raise MalformedResponseError("Staged target has no upload URL", "upload")
        parameters = target.get("parameters") or []
        form = {p["name"]: p["value"] for p in parameters if isinstance(p, dict) and "name" in p}

        async def _post() -> None:
            try:
                response = await self._http.post(
                    url,
                    data=form,
                    files={"file": (filename, data, mime_type)},
                )
            except httpx.HTTPError as e:
                raise TransportError(
                    f"Network error uploading to staged target: {type(e).__name__}",
                    "upload",
                ) from e
            _raise_for_status(response, "upload")

        s = self._settings
        await retry_async(
            _post,
            max_retries=s.max_retries,
            base_delay=s.retry_base_delay,
            max_delay=s.retry_max_delay,
            label="staged upload",
        )


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _raise_for_status(response: httpx.Response, operation: str) -> None:
    status = response.status_code
    if status < 400:
        return
    if status == 429:
        raise RateLimitedError(
            "Shopify rate limit exceeded", operation, retry_after=_retry_after(response)
        )
    if status >= 500:
        raise TransportError(f"Shopify returned HTTP {status}", operation)
    raise RejectedError(
        f"Shopify returned HTTP {status}",
        operation,
        details=[{"field": None, "message": response.reason_phrase or str(status)}],
    )


def _raise_graphql_errors(errors: Any, response: httpx.Response, operation: str) -> None:
    if not isinstance(errors, list):
        # Some versions return a bare string for auth failures
        raise RejectedError(str(errors), operation, details=[{"message": str(errors)}])

    details = []
    for err in errors:
        if not isinstance(err, dict):
            details.append({"message": str(err)})
            continue
        code = (err.get("extensions") or {}).get("code")
        if code == "THROTTLED":
            raise RateLimitedError(
                err.get("message") or "Throttled", operation,
                retry_after=_retry_after(response),
            )
        details.append({"message": err.get("message", ""), "code": code})

    message = details[0]["message"] if details else "GraphQL error"
    raise RejectedError(message or "GraphQL error", operation, details=details)
