"""Attach file URLs to orders and customers as metafields.

Uses ``metafieldsSet``, which upserts on (ownerId, namespace, key): writing the
same slot twice overwrites the value instead of adding a second metafield.
"""

from __future__ import annotations

import logging

from lpo_uploader.assets.models import Ack, LinkReport, LinkRequest, LinkResult, OwnerRecord
from lpo_uploader.config import Settings
from lpo_uploader.errors import LpoUploaderError, MalformedResponseError, RejectedError
from lpo_uploader.shopify.client import ShopifyClient

logger = logging.getLogger(__name__)

METAFIELDS_SET_MUTATION = """
mutation metafieldsSet($metafields: [MetafieldsSetInput!]!) {
  metafieldsSet(metafields: $metafields) {
    metafields {
      id
      namespace
      key
      value
    }
    userErrors { field message code }
  }
}
"""


class MetadataLinker:
    def __init__(self, settings: Settings, client: ShopifyClient):
        self._settings = settings
        self._client = client

    def request_for(self, locator: str, owners: list[OwnerRecord]) -> LinkRequest:
        """LinkRequest for the configured namespace/key slot."""
        s = self._settings
        return LinkRequest(
            locator=locator,
            owners=tuple(owners),
            namespace=s.metafield_namespace,
            key=s.metafield_key,
            value_type=s.metafield_type,
        )

    async def link(
        self,
        owner: OwnerRecord,
        locator: str,
        namespace: str | None = None,
        key: str | None = None,
        value_type: str | None = None,
    ) -> Ack:
        """Upsert one metafield on one owner.

        Raises:
            RejectedError: metafieldsSet userErrors (first message surfaced).
            TransportError / RateLimitedError: after retries.
            MalformedResponseError: missing payload or written metafield.
        """
        s = self._settings
        variables = {
            "metafields": [
                {
                    "ownerId": owner.gid,
                    "namespace": namespace or s.metafield_namespace,
                    "key": key or s.metafield_key,
                    "type": value_type or s.metafield_type,
                    "value": locator,
                }
            ]
        }
        result = await self._client.execute(METAFIELDS_SET_MUTATION, variables, "link")

        payload = result.get("metafieldsSet")
        if not isinstance(payload, dict):
            raise MalformedResponseError("metafieldsSet payload missing", "link")
        user_errors = payload.get("userErrors") or []
        if user_errors:
            raise RejectedError.from_user_errors(user_errors, "link")

        metafields = payload.get("metafields") or []
        if not metafields or not isinstance(metafields[0], dict):
            raise MalformedResponseError("metafieldsSet returned no metafield", "link")

        written = metafields[0]
        logger.info(
            "Linked %s %s -> %s.%s",
            owner.owner_type.value,
            owner.owner_id,
            written.get("namespace", namespace or s.metafield_namespace),
            written.get("key", key or s.metafield_key),
        )
        return Ack(
            owner=owner,
            metafield_id=str(written.get("id") or ""),
            value=str(written.get("value", locator)),
        )

    async def link_request(self, request: LinkRequest) -> LinkReport:
        """Link every owner in order, recording each outcome.

        A failure on one owner does not stop the others and does not undo
        owners already written.
        """
        report = LinkReport(locator=request.locator)
        for owner in request.owners:
            try:
                ack = await self.link(
                    owner, request.locator, request.namespace, request.key, request.value_type
                )
            except LpoUploaderError as e:
                logger.error(
                    "Link failed for %s %s: %s",
                    owner.owner_type.value,
                    owner.owner_id,
                    e,
                )
                report.results.append(LinkResult(owner=owner, error=e))
            else:
                report.results.append(LinkResult(owner=owner, ack=ack))
        return report
