from peerping.daemon import PeerPingDaemon

class PeerA(PeerPingDaemon):
    port = 50007
    listen_host = "127.0.0.1"
    source_host = "127.0.0.1"
    peers = ["127.0.0.2:50008"]
    interval_s = 1.0
    reverse_lookup = False

    def on_start(self, scheduler):
        print(f"[PeerA] probing {scheduler.sender.peers} every {scheduler.interval_s}s")

    def on_ready(self, registry):
        print("[PeerA] heard from everyone:", registry.snapshot())

if __name__ == "__main__":
    PeerA().serve()
