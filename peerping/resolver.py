from __future__ import annotations
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple
import socket

from .errors import AddressResolutionError, ResolutionExhausted

WILDCARDS = (None, "", "*")
FAMILIES = (socket.AF_INET, socket.AF_INET6)


@dataclass(frozen=True)
class ResolvedEndpoint:
    family: int
    sockaddr: Tuple[Any, ...]

    @property
    def address(self) -> str:
        return self.sockaddr[0]

    @property
    def port(self) -> int:
        return self.sockaddr[1]

    def __str__(self) -> str:
        if self.family == socket.AF_INET6:
            return f"[{self.address}]:{self.port}"
        return f"{self.address}:{self.port}"


def parse_peer(spec: str, default_port: int) -> Tuple[str, int]:
    """
    Split a configured peer into (host, port).

    Accepted forms: host, host:port, [v6addr], [v6addr]:port.
    A bare IPv6 literal (more than one colon, no brackets) keeps default_port.
    """
    s = (spec or "").strip()
    host, port_s = s, None
    if s.startswith("["):
        end = s.find("]")
        if end < 0:
            raise AddressResolutionError(spec, default_port, "unterminated '['")
        host, rest = s[1:end], s[end + 1:]
        if rest:
            if not rest.startswith(":"):
                raise AddressResolutionError(spec, default_port, f"unexpected {rest!r} after ']'")
            port_s = rest[1:]
    elif s.count(":") == 1:
        host, port_s = s.split(":", 1)

    if not host:
        raise AddressResolutionError(spec, default_port, "empty host")
    if port_s is None:
        return host, int(default_port)
    try:
        port = int(port_s)
    except ValueError:
        raise AddressResolutionError(host, default_port, f"bad port {port_s!r}") from None
    if not 0 <= port <= 65535:
        raise AddressResolutionError(host, port, "port out of range")
    return host, port


def resolve(host: Optional[str], port: int, *, passive: bool = False) -> List[ResolvedEndpoint]:
    """
    Resolve host/port into UDP candidates covering IPv4 and IPv6, in resolver order.
    host None, "" or "*" means any local interface.
    """
    if host in WILDCARDS:
        host, passive = None, True
    flags = socket.AI_PASSIVE if passive else 0
    try:
        infos = socket.getaddrinfo(host, port, socket.AF_UNSPEC, socket.SOCK_DGRAM, 0, flags)
    except (OSError, UnicodeError) as ex:
        raise AddressResolutionError(host, port, ex) from ex

    out: List[ResolvedEndpoint] = []
    for family, _type, _proto, _canon, sockaddr in infos:
        if family not in FAMILIES:
            continue
        ep = ResolvedEndpoint(family, tuple(sockaddr))
        if ep not in out:
            out.append(ep)
    if not out:
        raise AddressResolutionError(host, port, "no candidates")
    return out


def bind_first(endpoints: Sequence[ResolvedEndpoint], host: Optional[str], port: int) -> Tuple[socket.socket, ResolvedEndpoint]:
    """Bind a UDP socket on the first candidate that accepts it."""
    failures: List[Tuple[ResolvedEndpoint, OSError]] = []
    for ep in endpoints:
        sock = None
        try:
            sock = socket.socket(ep.family, socket.SOCK_DGRAM)
            sock.bind(ep.sockaddr)
            return sock, ep
        except OSError as ex:
            failures.append((ep, ex))
            if sock is not None:
                sock.close()
    raise ResolutionExhausted(host, port, failures)


def open_first(
    endpoints: Sequence[ResolvedEndpoint],
    host: Optional[str],
    port: int,
    *,
    source: Optional[str] = None,
) -> Tuple[socket.socket, ResolvedEndpoint]:
    """
    Create a send socket for the first candidate that allows it.
    With `source`, the socket is also bound to that local address (same family).
    """
    sources = resolve(source, 0) if source else []
    failures: List[Tuple[ResolvedEndpoint, OSError]] = []
    for ep in endpoints:
        sock = None
        try:
            sock = socket.socket(ep.family, socket.SOCK_DGRAM)
            if source:
                local = next((s for s in sources if s.family == ep.family), None)
                if local is None:
                    raise OSError(f"no {source} address in the family of {ep}")
                sock.bind(local.sockaddr)
            return sock, ep
        except OSError as ex:
            failures.append((ep, ex))
            if sock is not None:
                sock.close()
    raise ResolutionExhausted(host, port, failures)
