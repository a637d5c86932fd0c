"""Relay between AI-chat pages and a local bridge process.

Pages are watched by per-page agents that submit captures; a single connector
owns the WebSocket to the bridge daemon, enriches captures with tab metadata
and routes inbound commands and stream deltas back to the right page.
"""

from __future__ import annotations

from .config import BridgeConfig
from .connector import ConnectionState, Connector
from .envelope import Envelope, Op, Source, decode, encode
from .tab_registry import TabEntry, TabRegistry

__all__ = [
    "BridgeConfig",
    "ConnectionState",
    "Connector",
    "Envelope",
    "Op",
    "Source",
    "TabEntry",
    "TabRegistry",
    "decode",
    "encode",
]
__version__ = "0.1.0"
