"""
Prohibited-content rules for negotiation messages.

Rules are data: each entry pairs a compiled pattern with the violation
kind it reports. The scanner evaluates them in table order against the
progressively redacted text, so earlier rules take precedence where
patterns overlap (an e-mail address is reported as contact info before the
domain inside it could be reported as a link).
"""

import re
from dataclasses import dataclass
from typing import Pattern, Tuple

from negotiation_engine.models import ViolationKind


@dataclass(frozen=True)
class PolicyRule:
    """A single prohibited-content pattern.

    Attributes:
        name: Short rule identifier used in logs
        kind: Violation kind reported when the pattern matches
        pattern: Compiled regular expression
    """
    name: str
    kind: ViolationKind
    pattern: Pattern


def _rule(name: str, kind: ViolationKind, pattern: str) -> PolicyRule:
    return PolicyRule(name=name, kind=kind, pattern=re.compile(pattern, re.IGNORECASE))


DEFAULT_RULES: Tuple[PolicyRule, ...] = (
    # Contact information
    _rule(
        "email",
        ViolationKind.CONTACT_INFO,
        r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b",
    ),
    _rule(
        "phone",
        ViolationKind.CONTACT_INFO,
        # Space-only separators need a country code or a bracketed area code
        r"(?<![\w$])(?:\+\d{1,3}[\s.-]?(?:\(\d{3}\)|\d{3})[\s.-]?\d{3}[\s.-]?\d{4}"
        r"|\(\d{3}\)\s?\d{3}[\s.-]?\d{4}"
        r"|(?:\d{1,3}[.-])?\d{3}[.-]?\d{3}[.-]?\d{4})(?![\w])",
    ),
    _rule(
        "international_phone",
        ViolationKind.CONTACT_INFO,
        r"(?<![\w$])\+\d{8,15}(?!\d)",
    ),
    _rule(
        "handle",
        ViolationKind.CONTACT_INFO,
        r"(?<![\w.@])@(?=[A-Za-z0-9_]*[A-Za-z])[A-Za-z0-9_]{2,30}\b",
    ),
    _rule(
        "messaging_app",
        ViolationKind.CONTACT_INFO,
        r"\b(?:whatsapp|telegram|signal\s+app|discord|skype|wechat|snapchat|instagram|facebook|twitter)\b",
    ),
    _rule(
        "contact_request",
        ViolationKind.CONTACT_INFO,
        r"\b(?:contact\s*me|reach\s*out|dm\s*me|message\s*me|text\s*me|call\s*me|email\s*me)\b",
    ),
    # Off-platform payment
    _rule(
        "payment_app",
        ViolationKind.OFF_PLATFORM_PAYMENT,
        r"\b(?:paypal|venmo|cash\s*app|zelle|revolut|payoneer|western\s*union|moneygram"
        r"|bitcoin|btc|ethereum|usdt|crypto)\b",
    ),
    _rule(
        "bank_transfer",
        ViolationKind.OFF_PLATFORM_PAYMENT,
        r"\b(?:(?:bank|wire)\s*transfer|iban|swift\s*code|routing\s*number|account\s*number)\b",
    ),
    _rule(
        "pay_outside",
        ViolationKind.OFF_PLATFORM_PAYMENT,
        r"\b(?:pay\s+(?:you\s+|me\s+)?(?:directly|outside|off[\s-]*(?:platform|site))"
        r"|(?:outside|off)\s+(?:of\s+)?(?:the\s+)?(?:platform|site|app))\b",
    ),
    _rule(
        "external_marketplace",
        ViolationKind.OFF_PLATFORM_PAYMENT,
        r"\b(?:fiverr|upwork|freelancer|ebay|craigslist|etsy|gumroad|codecanyon)\b",
    ),
    # External links
    _rule(
        "url",
        ViolationKind.EXTERNAL_REDIRECT,
        r"\b(?:https?://|www\.)[^\s<>\"']+",
    ),
    _rule(
        "bare_domain",
        ViolationKind.EXTERNAL_REDIRECT,
        r"\b[a-z0-9](?:[a-z0-9-]*[a-z0-9])?(?:\.[a-z0-9-]+)*"
        r"\.(?:com|net|org|io|co|me|ly|gg|app|dev|xyz|info|biz)\b(?:/[^\s]*)?",
    ),
)
