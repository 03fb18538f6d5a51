from __future__ import annotations
from typing import Dict, List, Optional, Tuple
import socket

from .errors import SendFailure
from .logger import logger
from .registry import normalize
from .resolver import ResolvedEndpoint, open_first, parse_peer, resolve


class SenderSession:
    """
    One UDP send socket per configured peer.

    Peers are added one at a time so a peer that cannot be resolved fails on
    its own without touching the others. `send` does not retry; the scheduler's
    interval is the retry.
    """

    def __init__(self, default_port: int, *, source_host: Optional[str] = None):
        self.default_port = int(default_port)
        self.source_host = source_host
        self._socks: Dict[str, socket.socket] = {}
        self._endpoints: Dict[str, ResolvedEndpoint] = {}

    @property
    def peers(self) -> List[str]:
        return list(self._socks)

    def endpoint(self, identity: str) -> ResolvedEndpoint:
        return self._endpoints[normalize(identity)]

    def add_peer(self, spec: str) -> Tuple[str, ResolvedEndpoint]:
        """
        Resolve `spec` (host, host:port or [v6]:port) and open its socket.
        Raises AddressResolutionError / ResolutionExhausted for this peer only.
        """
        host, port = parse_peer(spec, self.default_port)
        identity = normalize(host)
        sock, ep = open_first(resolve(host, port), host, port, source=self.source_host)
        old = self._socks.pop(identity, None)
        if old is not None:
            old.close()
        self._socks[identity] = sock
        self._endpoints[identity] = ep
        logger.debug(f"peer {identity} -> {ep}")
        return identity, ep

    def send(self, identity: str, payload: bytes) -> None:
        key = normalize(identity)
        sock = self._socks.get(key)
        if sock is None:
            raise SendFailure(identity, "peer not configured for sending")
        try:
            sock.sendto(payload, self._endpoints[key].sockaddr)
        except OSError as ex:
            raise SendFailure(identity, ex) from ex

    def close(self) -> None:
        for s in list(self._socks.values()):
            s.close()
        self._socks.clear()
        self._endpoints.clear()

    def __enter__(self): return self
    def __exit__(self, exc_type, exc, tb): self.close()
