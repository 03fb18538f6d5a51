from __future__ import annotations
import signal, threading
from typing import Any, Dict, List, Mapping, Optional

from .config import DEFAULTS, coerce_settings
from .errors import AddressResolutionError
from .listener import ListenerSession
from .logger import logger
from .registry import PeerRegistry, normalize
from .resolver import parse_peer
from .scheduler import ProbeScheduler
from .sender import SenderSession


class PeerPingDaemon:
    # simple attributes users set
    port: Optional[int] = None
    peers: Optional[List[str]] = None
    interval_s: float = 1.0
    listen_host: Optional[str] = None
    source_host: Optional[str] = None
    payload: bytes = b"ping"
    sequence: bool = False
    exit_when_ready: bool = False
    exit_on_listener_fault: bool = False
    reverse_lookup: bool = True
    strict: bool = False

    # optional hooks
    def on_start(self, scheduler: ProbeScheduler) -> None: ...
    def on_stop(self) -> None: ...
    def on_ready(self, registry: PeerRegistry) -> None:
        logger.info(f"[{self.__class__.__name__}] ready: {', '.join(registry.peers) or '(no peers)'}")

    def config_port(self) -> int: return int(self.port if self.port is not None else self._must("port"))
    def config_peers(self) -> List[str]: return list(self.peers if self.peers is not None else self._must("peers"))
    def config_interval_s(self) -> float: return float(self.interval_s)
    def config_listen_host(self) -> Optional[str]: return self.listen_host
    def config_source_host(self) -> Optional[str]: return self.source_host
    def config_payload(self) -> bytes: return self.payload.encode("utf-8") if isinstance(self.payload, str) else self.payload
    def config_reverse_lookup(self) -> bool: return bool(self.reverse_lookup)

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> "PeerPingDaemon":
        """Build a daemon from a config mapping (file section + env + CLI)."""
        d = cls()
        for k, v in coerce_settings(settings).items():
            if k in DEFAULTS and v is not None:
                setattr(d, k, v)
        return d

    # internals
    def _must(self, name: str):
        raise NotImplementedError(f"Set `{name}` or override config_{name}()")

    def _skip_peer(self, spec: str, ex: AddressResolutionError) -> None:
        logger.error(f"[{self.__class__.__name__}] peer {spec}: {ex}")
        if self.strict:
            raise ex
        self.unresolved[spec] = ex

    def build_scheduler(self) -> ProbeScheduler:
        """
        Resolve and open everything. A listener that cannot be bound aborts;
        a peer that cannot be parsed or resolved is logged and recorded in
        `unresolved` unless `strict` is set. A peer that parsed but did not
        resolve stays in the registry; a malformed one has no identity to track.
        """
        port = self.config_port()
        self.unresolved: Dict[str, AddressResolutionError] = {}
        specs: List[str] = []
        for spec in self.config_peers():
            try:
                parse_peer(spec, port)
            except AddressResolutionError as ex:
                self._skip_peer(spec, ex)
                continue
            specs.append(spec)

        registry = PeerRegistry(normalize(parse_peer(s, port)[0]) for s in specs)
        registry.on_ready(lambda: self.on_ready(registry))

        listener = ListenerSession(port, self.config_listen_host(), reverse_lookup=self.config_reverse_lookup())
        sender = SenderSession(port, source_host=self.config_source_host())
        for spec in specs:
            try:
                identity, ep = sender.add_peer(spec)
            except AddressResolutionError as ex:
                if self.strict:
                    listener.close()
                    sender.close()
                self._skip_peer(spec, ex)
                continue
            registry.add_alias(ep.address, identity)

        return ProbeScheduler(
            listener, sender, registry,
            interval_s=self.config_interval_s(),
            payload=self.config_payload(),
            sequence=bool(self.sequence),
            exit_when_ready=bool(self.exit_when_ready),
            exit_on_listener_fault=bool(self.exit_on_listener_fault),
        )

    def serve(self, timeout_s: Optional[float] = None) -> bool:
        """
        Run until SIGINT/SIGTERM (or readiness, with exit_when_ready, or timeout_s).
        Returns whether every peer was observed.
        """
        self.scheduler = self.build_scheduler()

        previous = {}
        if threading.current_thread() is threading.main_thread():
            def _sig(_s, _f): self.scheduler.request_stop()
            for signum in (signal.SIGINT, signal.SIGTERM):
                previous[signum] = signal.signal(signum, _sig)

        self.scheduler.start()
        try:
            self.on_start(self.scheduler)
        except Exception as ex:
            logger.error(f"[{self.__class__.__name__}] on_start error: {ex}")

        ep = self.scheduler.listener.endpoint
        logger.info(f"[{self.__class__.__name__}] up: listen={ep} peers={self.scheduler.registry.peers}")
        try:
            ready = self.scheduler.run(timeout_s)
        finally:
            try:
                self.on_stop()
            except Exception as ex:
                logger.error(f"[{self.__class__.__name__}] on_stop error: {ex}")
            for signum, handler in previous.items():
                if handler is not None:
                    signal.signal(signum, handler)
            logger.info(f"[{self.__class__.__name__}] stopped")
        return ready
