"""Content policy screening for negotiation messages"""

from .rules import DEFAULT_RULES, PolicyRule
from .scanner import PolicyScanner, ScanResult, scan

__all__ = ["DEFAULT_RULES", "PolicyRule", "PolicyScanner", "ScanResult", "scan"]
