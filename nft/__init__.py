"""
Deferred Reveal Asset Protocol - Content Availability

This package provides the content gates consulted before an asset reveal is
accepted.
"""

from .content import (
    ContentGate,
    ContentGateError,
    GateType,
    HTTPContentGate,
    InMemoryContentGate,
    LocalContentGate,
    content_id_for,
    create_content_gate,
)

__all__ = [
    "ContentGate",
    "ContentGateError",
    "GateType",
    "HTTPContentGate",
    "InMemoryContentGate",
    "LocalContentGate",
    "content_id_for",
    "create_content_gate",
]
