"""Upload-and-link orchestration.

Upload path:  bytes -> AssetUploader (-> resolve while processing)
              -> MetadataLinker for the order, and the customer if given.
Webhook path: verified orders/create payload -> note attribute URL
              -> MetadataLinker for the order and its customer.

Link failures are collected per owner and never reported as success.
Owners already written are left in place: the metafield upsert makes a
retry of the whole operation safe.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from lpo_uploader.assets.models import AssetReference, LinkReport, owners_for
from lpo_uploader.assets.uploader import AssetUploader
from lpo_uploader.config import Settings
from lpo_uploader.metadata.linker import MetadataLinker
from lpo_uploader.shopify.client import ShopifyClient
from lpo_uploader.webhooks.orders import OrderNotification

logger = logging.getLogger(__name__)


@dataclass
class UploadOutcome:
    reference: AssetReference
    report: LinkReport

    @property
    def ok(self) -> bool:
        return self.report.ok

    def to_dict(self) -> dict:
        data = {
            "success": self.ok,
            "fileUrl": self.reference.locator,
            "fileId": self.reference.identifier or None,
            "links": self.report.to_list(),
        }
        if not self.ok:
            failed = ", ".join(
                f"{r.owner.owner_type.value} {r.owner.owner_id}" for r in self.report.failures
            )
            data["error"] = f"File uploaded but linking failed for {failed}"
        return data


class LpoService:
    def __init__(
        self,
        settings: Settings,
        client: ShopifyClient,
        uploader: AssetUploader | None = None,
        linker: MetadataLinker | None = None,
    ):
        self.settings = settings
        self.client = client
        self.uploader = uploader or AssetUploader(settings, client)
        self.linker = linker or MetadataLinker(settings, client)

    async def upload_document(
        self,
        data: bytes,
        filename: str,
        mime_type: str | None = None,
    ) -> AssetReference:
        """Upload and return a READY reference; never one without a URL."""
        return await self.uploader.upload_ready(data, filename, mime_type)

    async def upload_and_link(
        self,
        data: bytes,
        filename: str,
        mime_type: str | None,
        order_id: str,
        customer_id: str | None = None,
    ) -> UploadOutcome:
        # Validate owners before spending an upload on them
        owners = owners_for(order_id, customer_id)
        reference = await self.upload_document(data, filename, mime_type)
        report = await self.linker.link_request(
            self.linker.request_for(reference.locator, owners)
        )
        if not report.ok:
            logger.warning(
                "Partial link for %s: %d of %d owners failed",
                reference.locator,
                len(report.failures),
                len(report.results),
            )
        return UploadOutcome(reference=reference, report=report)

    async def handle_order_created(self, notification: OrderNotification) -> LinkReport | None:
        """Link the order's file URL, or None when the order carries none."""
        if not notification.locator:
            logger.info(
                "Order %s has no %s attribute — nothing to link",
                notification.order_id,
                self.settings.attribute_name,
            )
            return None
        return await self.linker.link_request(
            self.linker.request_for(notification.locator, notification.owners)
        )
