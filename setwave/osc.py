"""
setwave - talk to Ableton Live via AbletonOSC.

Requires AbletonOSC installed as a Remote Script. Replies and listener
notifications come back to the same UDP socket the requests are sent from.
"""

import logging
import socket
import threading
import time

from pythonosc.osc_message import OscMessage
from pythonosc.osc_message_builder import OscMessageBuilder

from .spec_data import spec as _ableton_spec

logger = logging.getLogger(__name__)

REMOTE_PORT = 11000
LOCAL_PORT = 11001
TICK_DURATION = 0.5


def build_message(address: str, params=()) -> bytes:
    """Encode an OSC message. Values may be plain or (value, osc_type) pairs."""
    builder = OscMessageBuilder(address)
    for p in params:
        if isinstance(p, tuple):
            builder.add_arg(p[0], p[1])
        else:
            builder.add_arg(p)
    return builder.build().dgram


class AbletonOSC:
    """Single-socket OSC client for AbletonOSC.

    Sends and receives on the SAME UDP socket so the reply always comes back
    to our listening port. Two kinds of receivers share the socket:
    one-shot reply handlers installed by query(), and persistent listeners
    installed by add_listener().
    """

    def __init__(
        self, hostname="127.0.0.1", port=REMOTE_PORT, client_port=LOCAL_PORT, retries=0
    ):
        self._remote = (hostname, port)
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind(("0.0.0.0", client_port))
        self._sock.setblocking(False)
        self._handlers = {}
        self._listeners = {}
        self._lock = threading.Lock()
        self._retries = retries

        self._running = True
        self._thread = threading.Thread(target=self._recv_loop, daemon=True)
        self._thread.start()

    def _recv_loop(self):
        while self._running:
            try:
                data, _ = self._sock.recvfrom(65536)
                self._dispatch(data)
            except BlockingIOError:
                time.sleep(0.005)
            except OSError:
                break

    def _dispatch(self, data: bytes):
        try:
            msg = OscMessage(data)
            with self._lock:
                handler = self._handlers.get(msg.address)
                listeners = list(self._listeners.get(msg.address, ()))
            if handler:
                handler(msg.address, msg.params)
            for listener in listeners:
                listener(msg.address, msg.params)
        except Exception:
            logger.exception("OSC dispatch failed")

    def send(self, address: str, params=()):
        """Send an OSC message (fire-and-forget)."""
        self._sock.sendto(build_message(address, params), self._remote)

    def query(self, address: str, params=(), timeout: float = TICK_DURATION):
        """Send an OSC message and wait for the reply."""
        last_err = None
        for attempt in range(1 + self._retries):
            if attempt > 0:
                time.sleep(0.2 * attempt)
            rv = None
            event = threading.Event()

            def on_reply(_addr, p):
                nonlocal rv
                rv = tuple(p)
                event.set()

            with self._lock:
                self._handlers[address] = on_reply
            self._sock.sendto(build_message(address, params), self._remote)
            event.wait(timeout)
            with self._lock:
                self._handlers.pop(address, None)
            if event.is_set():
                return rv
            last_err = TimeoutError(f"No response from Ableton for: {address}")
        raise last_err

    def add_listener(self, address: str, callback):
        """Call callback(address, params) for every message on address.

        Returns a function that removes the listener again.
        """
        with self._lock:
            self._listeners.setdefault(address, []).append(callback)

        def remove():
            with self._lock:
                callbacks = self._listeners.get(address, [])
                if callback in callbacks:
                    callbacks.remove(callback)
                if not callbacks:
                    self._listeners.pop(address, None)

        return remove

    def stop(self):
        self._running = False
        self._sock.close()
        self._thread.join()


class DomainProxy:
    """Proxy for an AbletonOSC domain, optionally with bound indices.

    Non-indexed domains (song) use indices=[].
    Indexed domains (track, arrangement_clip) bind indices up front:
        api.track(0).get_all("arrangement_clips/name")  # indices=[0]
        api.arrangement_clip(3, 2).get("warp_markers")   # indices=[3, 2]
    """

    def __init__(self, osc, domain, addresses, indices=()):
        self._osc = osc
        self._domain = domain
        self._addresses = addresses
        self._indices = list(indices)

    def _validate(self, address):
        if address not in self._addresses:
            raise ValueError(f"Unknown address: {address}")

    def get_all(self, prop, timeout=TICK_DURATION):
        """Read a property and return every value after the index params."""
        address = f"/live/{self._domain.name}/get/{prop}"
        self._validate(address)
        result = self._osc.query(address, self._indices, timeout=timeout)
        return tuple(result[len(self._domain.index_params) :])

    def get(self, prop, timeout=TICK_DURATION):
        values = self.get_all(prop, timeout=timeout)
        return values[0] if len(values) == 1 else values

    def listen(self, prop, callback):
        """Subscribe to changes of prop; callback receives the pushed values.

        Notifications for other indices on the same address are ignored.
        Returns an unsubscribe function.
        """
        start = f"/live/{self._domain.name}/start_listen/{prop}"
        stop = f"/live/{self._domain.name}/stop_listen/{prop}"
        notify = f"/live/{self._domain.name}/get/{prop}"
        for address in (start, stop, notify):
            self._validate(address)
        n = len(self._domain.index_params)
        indices = list(self._indices)

        def on_notify(_addr, params):
            if list(params[:n]) != indices:
                return
            callback(tuple(params[n:]))

        remove = self._osc.add_listener(notify, on_notify)
        self._osc.send(start, indices)

        def unsubscribe():
            remove()
            try:
                self._osc.send(stop, indices)
            except OSError as e:
                logger.warning("Could not stop listener %s%s: %s", stop, indices, e)

        return unsubscribe


class LiveAPI:
    """Wrapper around AbletonOSC with domain-scoped proxies.

        api.song.get("current_song_time")
        api.track(2).get_all("arrangement_clips/start_time")
        api.arrangement_clip(2, 0).get_all("warp_markers")
    """

    def __init__(
        self, hostname="127.0.0.1", port=REMOTE_PORT, client_port=LOCAL_PORT, retries=0
    ):
        self._osc = AbletonOSC(hostname, port, client_port, retries=retries)
        self.spec = _ableton_spec
        self._addresses = self.spec.addresses()
        self._domains = {d.name: d for d in self.spec.domains}
        self.song = DomainProxy(self._osc, self._domains["song"], self._addresses)

    def _indexed(self, name, *indices):
        return DomainProxy(self._osc, self._domains[name], self._addresses, indices)

    def track(self, track_id):
        return self._indexed("track", track_id)

    def arrangement_clip(self, track_id, clip_id):
        return self._indexed("arrangement_clip", track_id, clip_id)

    def test(self, timeout=TICK_DURATION):
        """Round-trip /live/test; raises TimeoutError when Live is unreachable."""
        return self._osc.query("/live/test", timeout=timeout)

    def stop(self):
        self._osc.stop()
