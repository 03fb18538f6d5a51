from __future__ import annotations
from typing import Any, List, Optional, Tuple


class PeerPingError(Exception):
    """Base class for every error raised by peerping."""


class AddressResolutionError(PeerPingError):
    """No usable endpoint could be produced for a host/port pair."""

    def __init__(self, host: Optional[str], port: int, reason: Any):
        self.host = host
        self.port = port
        self.reason = reason
        super().__init__(f"cannot resolve {host or '*'}:{port}: {reason}")


class ResolutionExhausted(AddressResolutionError):
    """Every resolved candidate failed to bind/open."""

    def __init__(self, host: Optional[str], port: int, failures: List[Tuple[Any, OSError]]):
        self.failures = list(failures)
        detail = "; ".join(f"{ep}: {err}" for ep, err in self.failures) or "no candidates"
        super().__init__(host, port, detail)


class ListenerFault(PeerPingError):
    """The listener socket is no longer usable."""


class SendFailure(PeerPingError):
    def __init__(self, peer: str, reason: Any):
        self.peer = peer
        self.reason = reason
        super().__init__(f"send to {peer} failed: {reason}")
