"""Audio sample store — decoding, downmix and memoization."""

import numpy as np
import pytest
import soundfile as sf

from setwave.audio import AudioDecodeError, AudioStore, decode_audio


def _write(path, data, rate=1000):
    sf.write(str(path), np.asarray(data, dtype=np.float32), rate, subtype="FLOAT")
    return str(path)


def test_mono_is_used_unchanged(tmp_path):
    path = _write(tmp_path / "mono.wav", [0.0, 0.25, -0.5, 1.0])
    buf = decode_audio(open(path, "rb").read())
    assert buf.sample_rate == 1000
    np.testing.assert_array_equal(buf.samples, [0.0, 0.25, -0.5, 1.0])


def test_stereo_is_averaged(tmp_path):
    left = [1.0, 0.5, -1.0]
    right = [0.0, 0.5, 0.0]
    path = _write(tmp_path / "stereo.wav", np.column_stack([left, right]), rate=44100)
    buf = decode_audio(open(path, "rb").read())
    assert buf.sample_rate == 44100
    np.testing.assert_allclose(buf.samples, [0.5, 0.5, -0.5])


def test_more_than_two_channels_rejected(tmp_path):
    path = _write(tmp_path / "quad.wav", np.zeros((10, 4)))
    with pytest.raises(AudioDecodeError, match="channel"):
        decode_audio(open(path, "rb").read())


def test_corrupt_bytes_raise():
    with pytest.raises(AudioDecodeError):
        decode_audio(b"definitely not a wav file")


def test_buffers_are_read_only(tmp_path):
    path = _write(tmp_path / "a.wav", [0.1, 0.2])
    buf = AudioStore().load(path)
    assert not buf.samples.flags.writeable
    with pytest.raises(ValueError):
        buf.samples[0] = 1.0


def test_store_memoizes_by_path(tmp_path):
    path = _write(tmp_path / "a.wav", [0.1, 0.2])
    calls = []

    def counting_decoder(data):
        calls.append(len(data))
        return decode_audio(data)

    store = AudioStore(decoder=counting_decoder)
    first = store.load(path)
    second = store.load(path)
    assert first is second
    assert len(calls) == 1
    assert path in store
    assert len(store) == 1


def test_store_missing_file(tmp_path):
    with pytest.raises(AudioDecodeError, match="missing.wav"):
        AudioStore().load(str(tmp_path / "missing.wav"))


def test_store_does_not_cache_failures(tmp_path):
    path = tmp_path / "late.wav"
    store = AudioStore()
    with pytest.raises(AudioDecodeError):
        store.load(str(path))
    _write(path, [0.3])
    assert store.load(str(path)).samples[0] == pytest.approx(0.3)
