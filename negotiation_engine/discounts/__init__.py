"""Discount code issuance and redemption"""

from .issuer import CODE_ALPHABET, DiscountCodeIssuer, normalize_code

__all__ = ["CODE_ALPHABET", "DiscountCodeIssuer", "normalize_code"]
