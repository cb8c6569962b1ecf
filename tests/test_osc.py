"""OSC plumbing — message encoding, domain proxies, envelope transport."""

import logging
import socket
from unittest.mock import MagicMock

import pytest
from pythonosc.osc_message import OscMessage

from setwave.osc import DomainProxy, build_message
from setwave.spec_data import spec
from setwave.transport import WAVEFORM_ADDRESS, EnvelopeTransport

ADDRESSES = spec.addresses()


def _proxy(domain, indices=(), reply=()):
    osc = MagicMock()
    osc.query.return_value = tuple(reply)
    return osc, DomainProxy(osc, spec.domain(domain), ADDRESSES, indices)


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def test_build_message_infers_and_forces_types():
    msg = OscMessage(build_message("/x", [1, 0.5, "a", (-1, "i")]))
    assert msg.address == "/x"
    assert msg.params == [1, 0.5, "a", -1]


def test_spec_covers_the_addresses_in_use():
    for address in (
        "/live/song/get/cue_points",
        "/live/song/start_listen/current_song_time",
        "/live/track/get/arrangement_clips/muted",
        "/live/track/start_listen/arrangement_clips",
        "/live/arrangement_clip/get/warp_markers",
        "/live/test",
    ):
        assert address in ADDRESSES
    with pytest.raises(KeyError):
        spec.domain("browser")


def test_extension_endpoints_are_flagged():
    flagged = {ep.address for ep in spec.extension_endpoints()}
    assert "/live/track/get/arrangement_clips/muted" in flagged
    assert "/live/track/start_listen/arrangement_clips" in flagged
    assert "/live/arrangement_clip/get/file_path" in flagged
    assert "/live/arrangement_clip/get/warp_markers" in flagged
    # stock AbletonOSC
    assert "/live/track/get/arrangement_clips/length" not in flagged
    assert "/live/arrangement_clip/get/start_marker" not in flagged
    assert "/live/song/start_listen/current_song_time" not in flagged
    assert "/live/song/get/cue_points" not in flagged
    assert flagged <= ADDRESSES


# ---------------------------------------------------------------------------
# DomainProxy
# ---------------------------------------------------------------------------


def test_get_strips_index_params():
    osc, track = _proxy("track", (3,), reply=(3, "Kick", "Bass"))
    assert track.get_all("arrangement_clips/name") == ("Kick", "Bass")
    osc.query.assert_called_once_with(
        "/live/track/get/arrangement_clips/name", [3], timeout=0.5
    )


def test_get_unwraps_single_values():
    _, song = _proxy("song", reply=(12.5,))
    assert song.get("current_song_time") == 12.5


def test_unknown_address_rejected():
    _, song = _proxy("song")
    with pytest.raises(ValueError, match="Unknown address"):
        song.get("tempo")


def test_listen_filters_by_index_and_unsubscribes():
    osc, track = _proxy("track", (2,))
    remove = MagicMock()
    osc.add_listener.return_value = remove
    seen = []

    unsubscribe = track.listen("arrangement_clips", seen.append)
    osc.send.assert_called_once_with("/live/track/start_listen/arrangement_clips", [2])
    address, on_notify = osc.add_listener.call_args.args
    assert address == "/live/track/get/arrangement_clips"

    on_notify(address, [2, 5])
    on_notify(address, [4, 7])
    assert seen == [(5,)]

    unsubscribe()
    remove.assert_called_once_with()
    osc.send.assert_called_with("/live/track/stop_listen/arrangement_clips", [2])


# ---------------------------------------------------------------------------
# EnvelopeTransport
# ---------------------------------------------------------------------------


@pytest.fixture
def receiver():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    sock.settimeout(2.0)
    yield sock
    sock.close()


def _receive(sock):
    data, _ = sock.recvfrom(65536)
    return OscMessage(data)


def test_section_and_clear_messages(receiver):
    transport = EnvelopeTransport("127.0.0.1", receiver.getsockname()[1])
    try:
        assert transport.send_section(3, [36, 0, -36, 0])
        assert transport.clear()
    finally:
        transport.close()

    section = _receive(receiver)
    assert section.address == WAVEFORM_ADDRESS
    assert section.params == [3, 36, 0, -36, 0]
    clear = _receive(receiver)
    assert clear.address == WAVEFORM_ADDRESS
    assert clear.params == [-1]


def test_send_failure_is_reported_not_raised(receiver, caplog):
    transport = EnvelopeTransport("127.0.0.1", receiver.getsockname()[1])
    transport._sock.close()
    transport._sock = MagicMock()
    transport._sock.sendto.side_effect = OSError("network is unreachable")
    with caplog.at_level(logging.WARNING, logger="setwave.transport"):
        assert transport.send_section(0, [1, 2]) is False
        assert transport.clear() is False
    assert "network is unreachable" in caplog.text
