"""
Policy scanner for negotiation messages.

Screens free text for contact details, off-platform payment cues and
external links, and produces a redacted copy for the counterpart.
"""

import logging
from dataclasses import dataclass
from typing import Any, FrozenSet, Iterable, Match, Optional, Sequence

from negotiation_engine.models import ViolationKind
from .rules import DEFAULT_RULES, PolicyRule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanResult:
    """Verdict for one piece of text.

    Attributes:
        text: Text with every prohibited fragment replaced by the marker
        flagged: Whether any violation was found
        violations: Violation kinds found
        raw_text: Text as submitted
    """
    text: str
    flagged: bool
    violations: FrozenSet[ViolationKind]
    raw_text: str


def _coerce_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _host_of(link: str) -> str:
    host = link.lower()
    for prefix in ("https://", "http://"):
        if host.startswith(prefix):
            host = host[len(prefix):]
    for separator in ("/", "?", "#", ":"):
        host = host.split(separator, 1)[0]
    if host.startswith("www."):
        host = host[4:]
    return host.rstrip(".,;!)")


class PolicyScanner:
    """Evaluates a table of prohibited-content rules against message text.

    The scanner holds configuration only; ``scan`` is a pure function of its
    input, so identical text always yields an identical verdict.
    """

    def __init__(
        self,
        rules: Sequence[PolicyRule] = DEFAULT_RULES,
        allowed_domains: Iterable[str] = (),
        marker: str = "[redacted]"
    ):
        """
        Args:
            rules: Rule table evaluated in order
            allowed_domains: Platform domains exempt from external-link rules
            marker: Replacement for redacted fragments
        """
        self.rules = tuple(rules)
        self.allowed_domains = frozenset(d.lower() for d in allowed_domains)
        self.marker = marker

    def is_allowed_link(self, link: str) -> bool:
        host = _host_of(link)
        return any(host == d or host.endswith("." + d) for d in self.allowed_domains)

    def scan(self, text: Any) -> ScanResult:
        """Screen ``text`` and return the verdict.

        Never raises: text that cannot be processed is reported with zero
        violations and kept verbatim.
        """
        raw = _coerce_text(text)
        try:
            redacted = raw
            violations = set()
            for rule in self.rules:
                redacted, matched = self._apply(rule, redacted)
                if matched:
                    violations.add(rule.kind)
                    logger.debug(f"Policy rule {rule.name} matched")
        except Exception as e:
            logger.warning(f"Policy scan failed open: {type(e).__name__}: {e}")
            return ScanResult(text=raw, flagged=False, violations=frozenset(), raw_text=raw)

        return ScanResult(
            text=redacted,
            flagged=bool(violations),
            violations=frozenset(violations),
            raw_text=raw,
        )

    def _apply(self, rule: PolicyRule, text: str):
        matched = False

        def replace(match: Match) -> str:
            nonlocal matched
            fragment = match.group(0)
            if rule.kind is ViolationKind.EXTERNAL_REDIRECT and self.is_allowed_link(fragment):
                return fragment
            matched = True
            return self.marker

        return rule.pattern.sub(replace, text), matched


_default_scanner: Optional[PolicyScanner] = None


def scan(text: Any) -> ScanResult:
    """Scan ``text`` with the default rule table and no allowed domains."""
    global _default_scanner
    if _default_scanner is None:
        _default_scanner = PolicyScanner()
    return _default_scanner.scan(text)
