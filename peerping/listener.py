from __future__ import annotations
from typing import NamedTuple, Optional, Union
import socket

import zmq

from .errors import ListenerFault
from .logger import logger
from .resolver import ResolvedEndpoint, bind_first, resolve


class Empty:
    """Nothing pending on the listener. Not an error."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "Empty"

    def __bool__(self) -> bool:
        return False


EMPTY = Empty()


class Datagram(NamedTuple):
    payload: bytes
    sender_address: str
    sender_host: Optional[str] = None

    @property
    def identities(self):
        """Matching keys, most specific first: reverse-resolved name, then raw address."""
        if self.sender_host:
            return (self.sender_host, self.sender_address)
        return (self.sender_address,)


Received = Union[Empty, Datagram]


def unmap_address(address: str) -> str:
    """IPv4 senders reaching a dual-stack socket show up as ::ffff:a.b.c.d."""
    if address.lower().startswith("::ffff:") and "." in address:
        return address[7:]
    return address


class ListenerSession:
    """
    One bound UDP socket with a receive that never blocks.

    The socket is non-blocking and registered with a zmq.Poller (pyzmq polls
    native file descriptors), so readiness checks and the idle wait share one
    mechanism. After a fatal socket error the session is faulted for good.
    """

    def __init__(
        self,
        port: int,
        host: Optional[str] = None,
        *,
        reverse_lookup: bool = True,
        bufsize: int = 2048,
    ):
        self.reverse_lookup = reverse_lookup
        self.bufsize = bufsize
        candidates = resolve(host, port, passive=True)
        self._sock, self._endpoint = bind_first(candidates, host, port)
        self._sock.setblocking(False)
        self._poller = zmq.Poller()
        self._poller.register(self._sock, zmq.POLLIN)
        self._faulted: Optional[str] = None
        logger.info(f"listening on {self.endpoint}")

    @property
    def endpoint(self) -> ResolvedEndpoint:
        """Bound endpoint, with the kernel-assigned port when bound to port 0."""
        if self._sock.fileno() < 0:
            return self._endpoint
        sockaddr = self._sock.getsockname()
        return ResolvedEndpoint(self._endpoint.family, tuple(sockaddr))

    @property
    def port(self) -> int:
        return self.endpoint.port

    @property
    def faulted(self) -> bool:
        return self._faulted is not None

    def _fault(self, reason) -> ListenerFault:
        self._faulted = str(reason)
        return ListenerFault(f"listener on {self._endpoint}: {reason}")

    def _poll(self, timeout_ms: int) -> bool:
        if self._faulted is not None:
            raise ListenerFault(f"listener on {self._endpoint}: {self._faulted}")
        if self._sock.fileno() < 0:
            raise self._fault("socket closed")
        try:
            socks = dict(self._poller.poll(timeout_ms))
        except zmq.ZMQError as ex:
            raise self._fault(ex) from ex
        # native sockets come back keyed by file descriptor; only one is registered
        return any(ev & zmq.POLLIN for ev in socks.values())

    def wait(self, timeout_s: float) -> bool:
        """Wait at most timeout_s for a datagram to become readable."""
        return self._poll(max(0, int(timeout_s * 1000)))

    def try_receive(self) -> Received:
        if not self._poll(0):
            return EMPTY
        try:
            data, addr = self._sock.recvfrom(self.bufsize)
        except (BlockingIOError, InterruptedError):
            return EMPTY
        except OSError as ex:
            raise self._fault(ex) from ex
        if not data:
            return EMPTY
        return Datagram(data, unmap_address(addr[0]), self._reverse(addr))

    def _reverse(self, addr) -> Optional[str]:
        if not self.reverse_lookup:
            return None
        try:
            host, _ = socket.getnameinfo(addr, socket.NI_NAMEREQD | socket.NI_DGRAM)
        except (OSError, UnicodeError):
            return None
        return host

    def close(self) -> None:
        try:
            self._poller.unregister(self._sock)
        except KeyError:
            pass
        self._sock.close()

    def __enter__(self): return self
    def __exit__(self, exc_type, exc, tb): self.close()
