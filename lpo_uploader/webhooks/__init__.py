"""Webhook inbound system.

Receives Shopify orders/create webhooks, verifies the HMAC signature over
the raw body, and links the file URL found in the order's note attributes.
"""
