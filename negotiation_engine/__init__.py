"""
Price Negotiation Engine.

Governs buyer/seller price negotiations over marketplace listings, screens
messages for off-platform contact, and issues single-use discount codes
for agreed prices.
"""

__version__ = "0.1.0"
