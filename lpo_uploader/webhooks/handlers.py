"""Webhook HTTP handlers — FastAPI routes for inbound Shopify webhooks.

Each delivery:
1. Reads raw body (needed for HMAC verification)
2. Verifies the signature over those exact bytes
3. Parses the order and extracts the file URL note attribute
4. Links the URL to the order and, if present, the customer

Response contract:
- 401 only for signature failures, before any parsing or platform call
- 200 when linked, or when there is nothing to link
- 400 for a verified but unusable payload
- 500 when a link fails, so Shopify redelivers (metafield upsert is idempotent)
"""

from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from lpo_uploader.errors import InvalidRequestError
from lpo_uploader.webhooks.orders import decode_body, parse_order_notification
from lpo_uploader.webhooks.verification import SIGNATURE_HEADER, WebhookAuthenticator

logger = logging.getLogger(__name__)

ORDERS_CREATE_TOPIC = "orders/create"

router = APIRouter(tags=["webhooks"])


def _log_webhook(headers: dict[str, str], order_id: str, status: str) -> None:
    """Audit log for webhook activity."""
    logger.info(
        "WEBHOOK_AUDIT shop=%s topic=%s id=%s order=%s status=%s",
        headers.get("x-shopify-shop-domain") or "-",
        headers.get("x-shopify-topic") or "-",
        headers.get("x-shopify-webhook-id") or "-",
        order_id or "-",
        status,
    )


@router.post("/webhook/orders/create")
async def orders_create_webhook(request: Request) -> JSONResponse:
    """Receive Shopify orders/create webhooks (signature-verified)."""
    start = time.time()
    settings = request.app.state.settings
    service = request.app.state.service

    # Raw bytes, before anything can re-serialize them
    body = await request.body()
    headers = {k.lower(): v for k, v in request.headers.items()}
    topic = headers.get("x-shopify-topic", "")

    authenticator = WebhookAuthenticator(
        settings.webhook_secret, body, headers.get(SIGNATURE_HEADER)
    )
    if not authenticator.verify():
        _log_webhook(headers, "", "signature_failed")
        return JSONResponse({"success": False, "error": "Unauthorized"}, status_code=401)

    if topic and topic != ORDERS_CREATE_TOPIC:
        _log_webhook(headers, "", "ignored_topic")
        return JSONResponse({"success": True, "linked": []}, status_code=200)

    order_id = ""
    try:
        notification = parse_order_notification(
            decode_body(authenticator.body), settings.attribute_name
        )
        order_id = notification.order_id
        report = await service.handle_order_created(notification)
    except InvalidRequestError as e:
        _log_webhook(headers, order_id, "invalid_payload")
        return JSONResponse({"success": False, "error": e.message}, status_code=400)

    if report is None:
        _log_webhook(headers, order_id, "no_attribute")
        return JSONResponse({"success": True, "linked": []}, status_code=200)

    elapsed_ms = (time.time() - start) * 1000
    logger.debug("Webhook processed in %.1fms: order %s", elapsed_ms, notification.order_id)

    if not report.ok:
        _log_webhook(headers, order_id, "link_failed")
        return JSONResponse(
            {
                "success": False,
                "error": "Failed to link file to all owners",
                "fileUrl": report.locator,
                "links": report.to_list(),
            },
            status_code=500,
        )

    _log_webhook(headers, order_id, "linked")
    return JSONResponse(
        {"success": True, "fileUrl": report.locator, "linked": report.to_list()},
        status_code=200,
    )
