"""Tests for the two-flow probe scheduler."""

import threading
import time

import pytest

from peerping.errors import SendFailure
from peerping.listener import EMPTY, Datagram, ListenerSession
from peerping.registry import PeerRegistry
from peerping.scheduler import ProbeScheduler
from peerping.sender import SenderSession

from .conftest import drain, wait_until


def make_node(peers, *, listen="127.0.0.1", expect=None, **kwargs):
    """Listener on an ephemeral port plus a sender for `peers` (host:port specs)."""
    listener = ListenerSession(0, listen, reverse_lookup=False)
    sender = SenderSession(0, source_host=listen)
    for spec in peers:
        sender.add_peer(spec)
    registry = PeerRegistry(expect if expect is not None else sender.peers)
    kwargs.setdefault("interval_s", 0.05)
    kwargs.setdefault("idle_s", 0.01)
    try:
        return ProbeScheduler(listener, sender, registry, **kwargs)
    except ValueError:
        listener.close()
        sender.close()
        raise


def test_self_probe_becomes_ready():
    listener = ListenerSession(0, "127.0.0.1", reverse_lookup=False)
    sender = SenderSession(listener.port, source_host="127.0.0.1")
    sender.add_peer("127.0.0.1")
    sched = ProbeScheduler(listener, sender, PeerRegistry(["127.0.0.1"]), interval_s=0.05, idle_s=0.01)
    with sched:
        assert sched.wait_ready(timeout=3.0) is True
        assert sched.is_ready() is True


def test_two_nodes_see_each_other(loopback_aliases):
    a = make_node([], listen="127.0.0.1", expect=["127.0.0.2"])
    b = make_node([f"127.0.0.1:{a.listener.port}"], listen="127.0.0.2", expect=["127.0.0.1"])
    a.sender.add_peer(f"127.0.0.2:{b.listener.port}")
    with a, b:
        assert a.wait_ready(timeout=3.0) is True
        assert b.wait_ready(timeout=3.0) is True


def test_burst_marks_every_peer(udp_from, loopback_aliases):
    sched = make_node([], expect=loopback_aliases)
    with sched:
        socks = [udp_from(addr) for addr in loopback_aliases]
        for s in socks:
            s.sendto(b"ping", ("127.0.0.1", sched.listener.port))
        assert sched.wait_ready(timeout=3.0) is True
    assert sched.registry.snapshot() == {addr: True for addr in loopback_aliases}


def test_unexpected_sender_ignored(udp_from):
    sched = make_node([], expect=["10.9.8.7"])
    with sched:
        udp_from("127.0.0.1").sendto(b"ping", ("127.0.0.1", sched.listener.port))
        time.sleep(0.2)
        assert sched.is_ready() is False


def test_handle_prefers_hostname_then_address():
    sched = make_node([], expect=["alice", "10.0.0.2"])
    try:
        assert sched.handle(Datagram(b"ping", "10.0.0.1", "Alice")) is True
        assert sched.handle(Datagram(b"ping", "10.0.0.2", "unknown.host")) is True
        assert sched.handle(Datagram(b"ping", "10.0.0.3", None)) is False
        assert sched.is_ready() is True
    finally:
        sched.stop()


def test_send_round_isolates_failures(listener):
    sched = make_node([f"localhost:{listener.port}", f"127.0.0.1:{listener.port}"])
    try:
        sched.sender._socks["localhost"].close()
        failed = sched.send_round()
        assert list(failed) == ["localhost"]
        assert isinstance(failed["localhost"], SendFailure)
        (d,) = drain(listener, 1)
        assert d.payload == b"ping"
    finally:
        sched.stop()


def test_sequence_payload(listener):
    sched = make_node([f"127.0.0.1:{listener.port}"], payload=b"hb", sequence=True)
    try:
        sched.send_round()
        sched.send_round()
        assert [d.payload for d in drain(listener, 2)] == [b"hb 1", b"hb 2"]
    finally:
        sched.stop()


def test_stop_is_prompt():
    sched = make_node([], expect=["10.9.8.7"], interval_s=10.0, idle_s=0.05)
    sched.start()
    assert wait_until(lambda: sched.running)
    t0 = time.monotonic()
    sched.stop()
    assert time.monotonic() - t0 < 1.0
    assert sched.running is False
    with pytest.raises(RuntimeError):
        sched.start()


def test_run_exits_when_ready():
    listener = ListenerSession(0, "127.0.0.1", reverse_lookup=False)
    sender = SenderSession(listener.port, source_host="127.0.0.1")
    sender.add_peer("127.0.0.1")
    sched = ProbeScheduler(
        listener, sender, PeerRegistry(["127.0.0.1"]),
        interval_s=0.05, idle_s=0.01, exit_when_ready=True,
    )
    t0 = time.monotonic()
    assert sched.run(timeout_s=5.0) is True
    assert time.monotonic() - t0 < 5.0
    assert sched.running is False


def test_run_times_out_when_peer_silent():
    sched = make_node([], expect=["10.9.8.7"], exit_when_ready=True)
    assert sched.run(timeout_s=0.2) is False


def test_listener_fault_leaves_send_only_mode(listener):
    sched = make_node([f"127.0.0.1:{listener.port}"], expect=["10.9.8.7"])
    sched.listener._sock.close()
    with sched:
        assert wait_until(lambda: not sched._rx_thread.is_alive())
        assert len(drain(listener, 2)) == 2
        assert sched._tx_thread.is_alive()


def test_listener_fault_can_stop_everything():
    sched = make_node([], expect=["10.9.8.7"], exit_on_listener_fault=True)
    sched.listener._sock.close()
    assert sched.run(timeout_s=5.0) is False
    assert sched.running is False


@pytest.mark.parametrize("kwargs", [{"interval_s": 0}, {"idle_s": -1}, {"payload": b""}])
def test_rejects_bad_settings(kwargs):
    with pytest.raises(ValueError):
        make_node([], **kwargs)


def test_stop_keeps_sockets_while_a_flow_is_stuck(monkeypatch):
    sched = make_node([], expect=["10.9.8.7"])
    release = threading.Event()
    entered = threading.Event()

    def stuck():
        entered.set()
        release.wait(5.0)
        return EMPTY

    monkeypatch.setattr(sched.listener, "try_receive", stuck)
    sched.start()
    assert entered.wait(2.0)

    sched.stop(join_timeout_s=0.1)
    assert sched.listener._sock.fileno() >= 0

    release.set()
    sched.stop()
    assert sched.running is False
    assert sched.listener._sock.fileno() < 0
