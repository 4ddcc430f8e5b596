"""LPO uploader — document upload and order metafield linking for Shopify.

Receives purchase-order documents, stores them through the Shopify Files
API and links the stored file to orders and customers as metafields.
Also accepts orders/create webhooks carrying a file URL in note attributes.
"""

__version__ = "0.3.0"
