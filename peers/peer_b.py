from peerping.daemon import PeerPingDaemon

class PeerB(PeerPingDaemon):
    port = 50008
    listen_host = "127.0.0.2"
    source_host = "127.0.0.2"
    peers = ["127.0.0.1:50007"]
    interval_s = 1.0
    reverse_lookup = False
    # one-shot: leave as soon as peer A was heard from
    exit_when_ready = True

if __name__ == "__main__":
    ready = PeerB().serve(timeout_s=30.0)
    print("[PeerB] ready" if ready else "[PeerB] gave up")
