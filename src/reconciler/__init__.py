"""Order/payment reconciliation core.

Reconciles orders placed in the order system (Shopify) with payment
collection in the payment platform (Square), driven by webhooks from both.
"""

__version__ = "0.1.0"
