from __future__ import annotations

import argparse, sys
from typing import Any, Dict, List, Optional

from peerping.config import load_config, with_env_overrides
from peerping.daemon import PeerPingDaemon
from peerping.errors import PeerPingError
from peerping.logger import configure_logging
from peerping.registry import PeerRegistry

DEFAULT_PORT = 50007
READY_MARKER = "READY"

class CliDaemon(PeerPingDaemon):
    def on_ready(self, registry: PeerRegistry) -> None:
        super().on_ready(registry)
        print(READY_MARKER, flush=True)

def _settings(ns: argparse.Namespace) -> Dict[str, Any]:
    cfg: Dict[str, Any] = load_config(ns.config, ns.section) if ns.config else {}
    cfg = with_env_overrides(cfg)
    cli = {
        "port": ns.port,
        "peers": ns.peer or None,
        "listen_host": ns.listen,
        "source_host": ns.source,
        "interval_s": ns.interval,
        "payload": ns.payload,
        "reverse_lookup": False if ns.no_reverse_lookup else None,
        "strict": True if ns.strict else None,
    }
    cfg.update({k: v for k, v in cli.items() if v is not None})
    cfg.setdefault("port", DEFAULT_PORT)
    return cfg

def _mk_daemon(ns: argparse.Namespace, **extra: Any) -> CliDaemon:
    cfg = _settings(ns)
    cfg.update(extra)
    return CliDaemon.from_settings(cfg)

def cmd_run(ns: argparse.Namespace) -> int:
    try:
        _mk_daemon(ns).serve()
        return 0
    except KeyboardInterrupt:
        return 130
    except (PeerPingError, NotImplementedError, ValueError, OSError) as ex:
        print(f"peerping run: {ex}", file=sys.stderr)
        return 2

def cmd_wait(ns: argparse.Namespace) -> int:
    try:
        ready = _mk_daemon(ns, exit_when_ready=True).serve(timeout_s=ns.timeout)
    except KeyboardInterrupt:
        return 130
    except (PeerPingError, NotImplementedError, ValueError, OSError) as ex:
        print(f"peerping wait: {ex}", file=sys.stderr)
        return 2
    if not ready:
        print(f"peerping wait: timed out after {ns.timeout}s", file=sys.stderr)
    return 0 if ready else 1

def cmd_send(ns: argparse.Namespace) -> int:
    sched = None
    try:
        d = _mk_daemon(ns)
        sched = d.build_scheduler()
        failed = sched.send_round()
        for peer in sched.sender.peers:
            print(f"{peer}: {'FAILED' if peer in failed else 'sent'}")
        for spec in d.unresolved:
            print(f"{spec}: UNRESOLVED")
        return 0 if not failed and not d.unresolved else 2
    except (PeerPingError, NotImplementedError, ValueError, OSError) as ex:
        print(f"peerping send: {ex}", file=sys.stderr)
        return 2
    finally:
        if sched is not None:
            sched.stop()

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="peerping",
        description="UDP peer liveness probe: ping peers and report when all were heard from."
    )
    sub = ap.add_subparsers(dest="cmd", required=True)

    def common(p):
        p.add_argument("-c", "--config", help="JSON/YAML config file")
        p.add_argument("--section", default="peerping", help="Config file section (default: peerping)")
        p.add_argument("-p", "--peer", action="append", metavar="host[:port]",
                       help="Peer to probe and expect (repeatable)")
        p.add_argument("--port", type=int, help=f"UDP port to listen on and probe (default: {DEFAULT_PORT} or $PEERPING_PORT)")
        p.add_argument("--listen", help="Listen address (default: any interface)")
        p.add_argument("--source", help="Local source address for outgoing probes")
        p.add_argument("--interval", type=float, help="Seconds between probe rounds (default 1.0)")
        p.add_argument("--payload", help="Probe marker (default: ping)")
        p.add_argument("--no-reverse-lookup", action="store_true", help="Match senders by raw address only")
        p.add_argument("--strict", action="store_true", help="Abort if any peer cannot be resolved")
        p.add_argument("--log-level", default="INFO", help="Log level (default INFO)")
        p.add_argument("--log-file", help="Also log to this file")

    pr = sub.add_parser("run", help="Probe peers until interrupted")
    common(pr)
    pr.set_defaults(func=cmd_run)

    pw = sub.add_parser("wait", help="Probe peers until every one was heard from, then exit")
    common(pw)
    pw.add_argument("--timeout", type=float, help="Give up after this many seconds (exit 1)")
    pw.set_defaults(func=cmd_wait)

    ps = sub.add_parser("send", help="Send one probe round and exit")
    common(ps)
    ps.set_defaults(func=cmd_send)

    return ap

def main(argv: Optional[List[str]] = None) -> int:
    ns = build_parser().parse_args(argv)
    configure_logging(ns.log_level, ns.log_file)
    return ns.func(ns)

if __name__ == "__main__":
    raise SystemExit(main())
