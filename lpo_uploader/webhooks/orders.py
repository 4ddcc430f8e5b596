"""Parse orders/create webhook payloads."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from lpo_uploader.assets.models import OwnerRecord, owners_for
from lpo_uploader.errors import InvalidRequestError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderNotification:
    order_id: str
    customer_id: str | None = None
    locator: str | None = None

    @property
    def owners(self) -> list[OwnerRecord]:
        return owners_for(self.order_id, self.customer_id)


def decode_body(body: bytes) -> dict[str, Any]:
    """JSON-decode an already-verified webhook body."""
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidRequestError("Webhook body is not valid JSON", "webhook") from e
    if not isinstance(payload, dict):
        raise InvalidRequestError("Webhook body is not a JSON object", "webhook")
    return payload


def find_attribute(attributes: Any, name: str) -> str | None:
    """Value of the first note attribute named ``name``, blank treated as absent."""
    if not isinstance(attributes, list):
        return None
    for attr in attributes:
        if isinstance(attr, dict) and attr.get("name") == name:
            value = attr.get("value")
            if value is None:
                return None
            value = str(value).strip()
            return value or None
    return None


def _owner_id(value: Any, label: str) -> str:
    """An id must be an integer or a non-blank string."""
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    raise InvalidRequestError(f"{label} id is missing or not a scalar", "webhook")


def parse_order_notification(payload: dict[str, Any], attribute_name: str) -> OrderNotification:
    """Build an OrderNotification, validating both owner ids.

    Raises:
        InvalidRequestError: missing or non-scalar ids, or a GID of the wrong type.
    """
    order_id = _owner_id(payload.get("id"), "Order")

    customer = payload.get("customer")
    customer_id = None
    if isinstance(customer, dict) and customer.get("id") is not None:
        customer_id = _owner_id(customer["id"], "Customer")

    # Rejects GIDs of the wrong owner type here rather than mid-link
    owners_for(order_id, customer_id)

    return OrderNotification(
        order_id=order_id,
        customer_id=customer_id,
        locator=find_attribute(payload.get("note_attributes"), attribute_name),
    )
