from .errors import AddressResolutionError, ListenerFault, PeerPingError, ResolutionExhausted, SendFailure
from .resolver import ResolvedEndpoint, parse_peer, resolve
from .listener import EMPTY, Datagram, Empty, ListenerSession
from .sender import SenderSession
from .registry import PeerRegistry, RegistryState
from .scheduler import ProbeScheduler
from .daemon import PeerPingDaemon

__all__ = [
    "PeerPingDaemon", "ProbeScheduler", "PeerRegistry", "RegistryState",
    "ListenerSession", "SenderSession", "Datagram", "Empty", "EMPTY",
    "ResolvedEndpoint", "parse_peer", "resolve",
    "PeerPingError", "AddressResolutionError", "ResolutionExhausted", "ListenerFault", "SendFailure",
]
