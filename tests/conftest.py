"""Shared fixtures and helpers for peerping tests."""

import socket
import time

import pytest

from peerping.listener import Datagram, ListenerSession


def wait_until(predicate, timeout=3.0, poll=0.01):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(poll)
    return predicate()


def drain(listener, count, timeout=3.0):
    """Collect up to `count` datagrams from a listener within `timeout`."""
    got = []
    deadline = time.monotonic() + timeout
    while len(got) < count and time.monotonic() < deadline:
        item = listener.try_receive()
        if isinstance(item, Datagram):
            got.append(item)
        else:
            listener.wait(0.02)
    return got


@pytest.fixture
def listener():
    session = ListenerSession(0, "127.0.0.1", reverse_lookup=False)
    yield session
    session.close()


@pytest.fixture
def loopback_aliases():
    """127.0.0.2 and 127.0.0.3 as distinct local sources; skip where the host lacks them."""
    extra = ["127.0.0.2", "127.0.0.3"]
    for addr in extra:
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            s.bind((addr, 0))
        except OSError:
            pytest.skip(f"{addr} not bindable on this host")
        finally:
            s.close()
    return ["127.0.0.1"] + extra


@pytest.fixture
def udp_from():
    """Factory for raw UDP sockets bound to a given local source address."""
    socks = []

    def make(source="127.0.0.1"):
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        s.bind((source, 0))
        socks.append(s)
        return s

    yield make
    for s in socks:
        s.close()


@pytest.fixture
def unresolvable(monkeypatch):
    """Make every *.invalid host fail resolution without touching DNS."""
    real = socket.getaddrinfo

    def fake(host, *args, **kwargs):
        if isinstance(host, str) and host.endswith(".invalid"):
            raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")
        return real(host, *args, **kwargs)

    monkeypatch.setattr(socket, "getaddrinfo", fake)
    return fake


def free_port(host="127.0.0.1"):
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        s.bind((host, 0))
        return s.getsockname()[1]
    finally:
        s.close()
