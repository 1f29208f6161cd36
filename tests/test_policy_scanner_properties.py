"""
Property-based tests for the policy scanner.

These tests verify that message screening is deterministic, never raises,
and flags contact details and off-platform payment cues while leaving
ordinary negotiation text alone.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

from hypothesis import given, settings, strategies as st

from negotiation_engine.models import Offer, OfferKind, Role, ViolationKind
from negotiation_engine.policy import DEFAULT_RULES, PolicyRule, PolicyScanner, scan


scanner = PolicyScanner(allowed_domains=("codemarket.io",))

# Strategy for arbitrary scanner input, including non-text values
any_input = st.one_of(st.text(max_size=300), st.binary(max_size=100), st.none(), st.integers())

prices = st.integers(min_value=1, max_value=99999)


@given(text=st.text(max_size=300))
@settings(max_examples=200)
def test_scan_is_deterministic(text):
    """
    **Feature: negotiation-engine, Property 1: Deterministic screening**

    For any input text, scanning it twice yields the same verdict.
    """
    first = scanner.scan(text)
    second = scanner.scan(text)

    assert first == second
    assert first.flagged == bool(first.violations)


@given(value=any_input)
@settings(max_examples=200)
def test_scan_never_raises(value):
    """
    **Feature: negotiation-engine, Property 2: Scanning never raises**

    For any input, including bytes, None and non-text values, scan returns
    a verdict and keeps the submitted text.
    """
    result = scanner.scan(value)

    assert isinstance(result.text, str)
    assert isinstance(result.raw_text, str)
    if not result.flagged:
        assert result.text == result.raw_text


def test_email_is_flagged_as_contact_info():
    """
    **Feature: negotiation-engine, Property 3: Contact info redaction**

    "email me at x@y.com" is flagged ContactInfo, kept raw for audit, and
    the redacted text no longer contains the address.
    """
    result = scan("email me at x@y.com")

    assert result.flagged
    assert ViolationKind.CONTACT_INFO in result.violations
    assert result.raw_text == "email me at x@y.com"
    assert "x@y.com" not in result.text
    assert "[redacted]" in result.text


@given(price=prices)
@settings(max_examples=100)
def test_prices_are_not_flagged(price):
    """
    For any price mentioned in plain negotiation text, nothing is flagged.
    """
    for text in (
        f"I can do {price} if that works for you",
        f"Would you take ${price}?",
        f"My best is {price}.",
        f"Can you do it @{price}?",
        f"Offers so far: {price} {price + 50} {price + 250}",
    ):
        result = scanner.scan(text)
        assert not result.flagged, f"{text!r} should not be flagged: {result.violations}"


@given(app=st.sampled_from(["PayPal", "venmo", "Zelle", "cash app", "bank transfer", "Western Union"]))
@settings(max_examples=30)
def test_payment_apps_are_off_platform_payment(app):
    """
    For any payment-app or bank-transfer mention, OffPlatformPayment is reported.
    """
    result = scanner.scan(f"Can I pay with {app} instead?")

    assert ViolationKind.OFF_PLATFORM_PAYMENT in result.violations


def test_phone_number_is_contact_info():
    result = scanner.scan("ring 555-123-4567 after six")

    assert ViolationKind.CONTACT_INFO in result.violations
    assert "555-123-4567" not in result.text


def test_phone_formats_are_contact_info():
    for text in ("call (555) 123 4567", "+1 555 123 4567", "555.123.4567", "5551234567"):
        result = scanner.scan(text)
        assert ViolationKind.CONTACT_INFO in result.violations, text


def test_price_lists_are_not_phone_numbers():
    result = scanner.scan("Offers so far: 750 800 1000, can you do it @750?")

    assert not result.flagged
    assert result.text == result.raw_text


def test_handle_is_contact_info():
    result = scanner.scan("find me @dev_guy on there")

    assert ViolationKind.CONTACT_INFO in result.violations
    assert "@dev_guy" not in result.text


def test_external_link_is_flagged():
    result = scanner.scan("see https://example.com/listing for the same thing cheaper")

    assert result.violations == frozenset({ViolationKind.EXTERNAL_REDIRECT})
    assert "example.com" not in result.text


def test_platform_link_is_allowed():
    result = scanner.scan("see https://codemarket.io/listing/5 and docs.codemarket.io")

    assert not result.flagged
    assert result.text == result.raw_text


def test_scanner_fails_open_on_rule_error():
    """
    A rule that blows up never propagates; the verdict is zero violations.
    """
    broken = PolicyRule(
        name="broken",
        kind=ViolationKind.CONTACT_INFO,
        pattern=MagicMock(sub=MagicMock(side_effect=RuntimeError("bad pattern"))),
    )
    result = PolicyScanner(rules=(broken,) + DEFAULT_RULES).scan("email me at x@y.com")

    assert not result.flagged
    assert result.violations == frozenset()
    assert result.text == "email me at x@y.com"


def test_custom_marker():
    result = PolicyScanner(marker="***").scan("write to a@b.org")

    assert result.text == "write to ***"


def test_counterpart_sees_redacted_text_only():
    """
    A flagged offer shows raw text to its author and audit, redacted text
    to the counterpart.
    """
    verdict = scan("email me at x@y.com")
    offer = Offer(
        sequence=1,
        author=Role.BUYER,
        kind=OfferKind.MESSAGE,
        price=None,
        text=verdict.text,
        raw_text=verdict.raw_text,
        timestamp=datetime(2026, 1, 1, tzinfo=timezone.utc),
        flagged=verdict.flagged,
        violations=verdict.violations,
    )

    assert offer.text_for(Role.BUYER) == "email me at x@y.com"
    assert offer.text_for(None) == "email me at x@y.com"
    assert offer.text_for(Role.SELLER) == verdict.text
    assert offer.to_dict(viewer=Role.SELLER)["text"] == verdict.text
    assert offer.to_dict(audit=True)["raw_text"] == "email me at x@y.com"
