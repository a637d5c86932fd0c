from __future__ import annotations

from .agent import AgentOptions, PageAgent
from .document import KeyPress, PageDocument, PageElement

__all__ = ["AgentOptions", "KeyPress", "PageAgent", "PageDocument", "PageElement"]
