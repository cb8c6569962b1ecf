"""
Envelope transport — pushes section waveforms to the setlist display.

Messages are plain OSC over UDP:
    /setlist/sectionWaveform <section_index> <max_0..max_R-1> <min_0..min_R-1>
    /setlist/sectionWaveform -1          # drop every cached section display

UDP gives no ordering guarantee, so sends are issued strictly one after
another from the caller's thread, each sendto() returning before the next
message is built.
"""

import logging
import socket
import time

from .osc import build_message

logger = logging.getLogger(__name__)

DISPLAY_PORT = 39041
WAVEFORM_ADDRESS = "/setlist/sectionWaveform"
CLEAR_SENTINEL = -1


class EnvelopeTransport:
    """Fire-and-forget OSC sender for section envelopes.

    Failures are logged and reported through the return value; they never
    raise, so a missed datagram only leaves a stale section on screen.
    """

    def __init__(
        self,
        hostname="127.0.0.1",
        port=DISPLAY_PORT,
        address=WAVEFORM_ADDRESS,
        interval: float = 0.0,
    ):
        self._remote = (socket.gethostbyname(hostname), port)
        self._address = address
        self._interval = interval
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self._last_send = 0.0

    def _send(self, params) -> bool:
        if self._interval:
            wait = self._last_send + self._interval - time.monotonic()
            if wait > 0:
                time.sleep(wait)
        try:
            self._sock.sendto(build_message(self._address, params), self._remote)
        except OSError as e:
            logger.warning("Send to %s:%d failed: %s", *self._remote, e)
            return False
        finally:
            self._last_send = time.monotonic()
        return True

    def send_section(self, index: int, payload) -> bool:
        return self._send([(int(index), "i")] + [(int(v), "i") for v in payload])

    def clear(self) -> bool:
        return self._send([(CLEAR_SENTINEL, "i")])

    def close(self):
        self._sock.close()
