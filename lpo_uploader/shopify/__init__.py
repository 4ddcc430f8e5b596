"""Shopify Admin API access."""

from lpo_uploader.shopify.client import ShopifyClient

__all__ = ["ShopifyClient"]
