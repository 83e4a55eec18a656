"""Abuse mitigation for chatguard."""

from chatguard.abuse.mitigation import (
    AbuseMitigation,
    AbuseMitigator,
    TimeoutRecord,
    DENY_LIST_KEY,
)

__all__ = [
    "AbuseMitigation",
    "AbuseMitigator",
    "TimeoutRecord",
    "DENY_LIST_KEY",
]
