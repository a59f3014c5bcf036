"""
Webhook handlers for the Rewards Hub platform.
"""
from .shopify import webhooks_bp

__all__ = ['webhooks_bp']
