from __future__ import annotations
from typing import Dict, Optional
import threading
import time

from .errors import ListenerFault, SendFailure
from .listener import Datagram, ListenerSession
from .logger import logger
from .registry import PeerRegistry
from .sender import SenderSession

DEFAULT_PAYLOAD = b"ping"


class ProbeScheduler:
    """
    Drives the receive flow and the send flow on two threads.

    - rx thread: drains the listener with try_receive(); when nothing is pending
      it waits at most `idle_s` on the listener's poller, never blocking on recv.
    - tx thread: every `interval_s` sends the payload to every peer; one failed
      peer is logged and the round moves on.

    The registry is the only state both sides touch. stop() sets one Event that
    both loops check at every poll/sleep, then closes the sockets.
    """

    def __init__(
        self,
        listener: ListenerSession,
        sender: SenderSession,
        registry: PeerRegistry,
        *,
        interval_s: float = 1.0,
        idle_s: float = 0.05,
        payload: bytes = DEFAULT_PAYLOAD,
        sequence: bool = False,
        exit_when_ready: bool = False,
        exit_on_listener_fault: bool = False,
    ):
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        if idle_s <= 0:
            raise ValueError("idle_s must be > 0")
        if not payload:
            raise ValueError("payload must not be empty")
        self.listener = listener
        self.sender = sender
        self.registry = registry
        self.interval_s = float(interval_s)
        self.idle_s = float(idle_s)
        self.payload = payload
        self.sequence = sequence
        self.exit_when_ready = exit_when_ready
        self.exit_on_listener_fault = exit_on_listener_fault

        self._stop = threading.Event()
        self._rx_thread: Optional[threading.Thread] = None
        self._tx_thread: Optional[threading.Thread] = None
        self._round = 0
        self._closed = False

        if exit_when_ready:
            registry.on_ready(self.request_stop)

    @property
    def running(self) -> bool:
        return any(t is not None and t.is_alive() for t in (self._rx_thread, self._tx_thread))

    def is_ready(self) -> bool:
        return self.registry.is_ready()

    def wait_ready(self, timeout: Optional[float] = None) -> bool:
        return self.registry.wait_ready(timeout)

    def request_stop(self) -> None:
        """Ask both flows to exit; safe from signal handlers and callbacks."""
        self._stop.set()

    # lifecycle
    def start(self) -> None:
        if self._closed:
            raise RuntimeError("scheduler already stopped")
        if self.running:
            return
        self._rx_thread = threading.Thread(target=self._rx_loop, name="peerping-rx", daemon=True)
        self._tx_thread = threading.Thread(target=self._tx_loop, name="peerping-tx", daemon=True)
        self._rx_thread.start()
        self._tx_thread.start()

    def stop(self, join_timeout_s: float = 2.0) -> None:
        """
        Stop both flows and close the sockets. If a flow is still running after
        `join_timeout_s` the sockets stay open; call stop() again to finish.
        """
        self._stop.set()
        for t in (self._rx_thread, self._tx_thread):
            if t is not None and t is not threading.current_thread():
                t.join(timeout=join_timeout_s)
        alive = [t.name for t in (self._rx_thread, self._tx_thread) if t is not None and t.is_alive()]
        if alive:
            logger.warning(f"{', '.join(alive)} still running after {join_timeout_s}s; sockets left open")
            return
        if not self._closed:
            self._closed = True
            self.listener.close()
            self.sender.close()

    def run(self, timeout_s: Optional[float] = None) -> bool:
        """
        Start both flows and block until stopped (or, with exit_when_ready,
        until every peer was seen). Returns readiness at exit.
        """
        self.start()
        deadline = None if timeout_s is None else time.monotonic() + timeout_s
        try:
            while not self._stop.is_set():
                wait = 0.5 if deadline is None else min(0.5, deadline - time.monotonic())
                if wait <= 0:
                    break
                self._stop.wait(wait)
        finally:
            self.stop()
        return self.is_ready()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb): self.stop()

    # flows
    def handle(self, dgram: Datagram) -> bool:
        """Mark the sender of `dgram` observed; False when it is not a configured peer."""
        for identity in dgram.identities:
            if self.registry.mark_observed(identity):
                return True
        logger.debug(f"ignoring datagram from unexpected sender {dgram.sender_address}")
        return False

    def next_payload(self) -> bytes:
        self._round += 1
        if self.sequence:
            return self.payload + f" {self._round}".encode("ascii")
        return self.payload

    def send_round(self) -> Dict[str, SendFailure]:
        """Send one probe to every peer. Returns the failures, keyed by peer."""
        payload = self.next_payload()
        failed: Dict[str, SendFailure] = {}
        for peer in self.sender.peers:
            try:
                self.sender.send(peer, payload)
            except SendFailure as ex:
                logger.warning(str(ex))
                failed[peer] = ex
        return failed

    def _rx_loop(self) -> None:
        while not self._stop.is_set():
            try:
                got = self.listener.try_receive()
                if isinstance(got, Datagram):
                    self.handle(got)
                    continue
                self.listener.wait(self.idle_s)
            except ListenerFault as ex:
                logger.error(f"receive flow stopped: {ex}")
                if self.exit_on_listener_fault:
                    self._stop.set()
                return

    def _tx_loop(self) -> None:
        while not self._stop.is_set():
            self.send_round()
            self._stop.wait(self.interval_s)
