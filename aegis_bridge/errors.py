from __future__ import annotations


class BridgeError(Exception):
    """Base class for relay failures. None of these are fatal to the process."""


class EncodingError(BridgeError):
    pass


class DecodingError(BridgeError):
    pass


class RouteNotFound(BridgeError):
    def __init__(self, tab_ref: str) -> None:
        super().__init__(f"no tracked page for tab={tab_ref!r}")
        self.tab_ref = tab_ref


class SendWhileDisconnected(BridgeError):
    def __init__(self, state: str) -> None:
        super().__init__(f"send attempted while {state}")
        self.state = state


class ConnectFailure(BridgeError):
    pass


class ReconnectBudgetExhausted(BridgeError):
    def __init__(self, attempts: int) -> None:
        super().__init__(f"reconnect budget exhausted after {attempts} attempts")
        self.attempts = attempts
