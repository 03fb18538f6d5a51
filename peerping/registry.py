from __future__ import annotations
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional
import threading
import time

from .logger import logger

ReadyCallback = Callable[[], None]


class RegistryState(Enum):
    WAITING = "waiting"
    READY = "ready"


def normalize(identity: str) -> str:
    return identity.strip().casefold()


class PeerRegistry:
    """
    Which configured peers have been heard from.

    The key set is fixed at construction. Entries only move from unobserved to
    observed, so readiness (every entry observed) flips to True at most once.
    Every read and write goes through one Condition; the receive flow writes
    while the scheduler and callers read.
    """

    def __init__(self, peers: Iterable[str]):
        self._seen: Dict[str, Optional[float]] = {}
        for p in peers:
            self._seen.setdefault(normalize(p), None)
        self._aliases: Dict[str, str] = {}
        self._cond = threading.Condition()
        self._ready = all(t is not None for t in self._seen.values())
        self._callbacks: List[ReadyCallback] = []

    @property
    def peers(self) -> List[str]:
        return list(self._seen)

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, identity: str) -> bool:
        return self._lookup(identity) is not None

    def _lookup(self, identity: str) -> Optional[str]:
        key = normalize(identity)
        if key in self._seen:
            return key
        return self._aliases.get(key)

    def add_alias(self, address: str, identity: str) -> None:
        """Let datagrams from `address` count for the configured `identity`."""
        key = normalize(identity)
        if key not in self._seen:
            raise KeyError(f"unknown peer {identity!r}")
        with self._cond:
            self._aliases.setdefault(normalize(address), key)

    def on_ready(self, cb: ReadyCallback) -> None:
        """Register a callback for the Waiting -> Ready transition (runs now if already ready)."""
        with self._cond:
            if not self._ready:
                self._callbacks.append(cb)
                return
        cb()

    def mark_observed(self, identity: str) -> bool:
        """
        Record that `identity` was heard from. Returns False (and changes
        nothing) when it matches no configured peer.
        """
        fired: List[ReadyCallback] = []
        with self._cond:
            key = self._lookup(identity)
            if key is None:
                return False
            if self._seen[key] is None:
                self._seen[key] = time.time()
                logger.debug(f"observed peer {key} (via {identity})")
                if not self._ready and all(t is not None for t in self._seen.values()):
                    self._ready = True
                    fired, self._callbacks = self._callbacks, []
                    self._cond.notify_all()
        if fired:
            logger.info(f"all {len(self._seen)} peers observed; ready")
            for cb in fired:
                try:
                    cb()
                except Exception as ex:
                    logger.error(f"ready callback failed: {ex}")
        return True

    def is_ready(self) -> bool:
        with self._cond:
            return self._ready

    @property
    def state(self) -> RegistryState:
        return RegistryState.READY if self.is_ready() else RegistryState.WAITING

    def wait_ready(self, timeout: Optional[float] = None) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: self._ready, timeout)

    def snapshot(self) -> Dict[str, bool]:
        with self._cond:
            return {k: t is not None for k, t in self._seen.items()}

    def missing(self) -> List[str]:
        with self._cond:
            return [k for k, t in self._seen.items() if t is None]

    def observed_at(self, identity: str) -> Optional[float]:
        with self._cond:
            key = self._lookup(identity)
            return self._seen.get(key) if key else None
