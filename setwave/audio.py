"""
Audio sample store — decoded mono sample buffers, one per file path.

Buffers are decoded once, marked read-only and shared by every clip that
references the same file. There is no eviction.
"""

from __future__ import annotations

import io
import logging
import threading
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import soundfile as sf

logger = logging.getLogger(__name__)


class AudioDecodeError(RuntimeError):
    """Raised when an audio file cannot be read or decoded."""


@dataclass(frozen=True, eq=False)
class AudioBuffer:
    samples: np.ndarray  # float32, mono
    sample_rate: int

    @property
    def duration(self) -> float:
        return len(self.samples) / self.sample_rate if self.sample_rate else 0.0


def decode_audio(data: bytes) -> AudioBuffer:
    """Decode a WAV (or any libsndfile format) byte string to a mono buffer.

    Stereo is downmixed by averaging the two channels sample by sample.
    """
    try:
        channel_data, sample_rate = sf.read(
            io.BytesIO(data), dtype="float32", always_2d=True
        )
    except (RuntimeError, TypeError, ValueError) as e:
        raise AudioDecodeError(f"Could not decode audio: {e}") from e

    n_channels = channel_data.shape[1]
    if n_channels == 1:
        samples = channel_data[:, 0]
    elif n_channels == 2:
        samples = (channel_data[:, 0] + channel_data[:, 1]) / 2
    else:
        raise AudioDecodeError(f"Unsupported channel count: {n_channels}")

    samples = np.ascontiguousarray(samples, dtype=np.float32)
    samples.flags.writeable = False
    return AudioBuffer(samples=samples, sample_rate=int(sample_rate))


class AudioStore:
    """Memoized file path -> AudioBuffer cache, safe to use from worker threads."""

    def __init__(self, decoder=decode_audio):
        self._decoder = decoder
        self._buffers: dict[str, AudioBuffer] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._lock = threading.Lock()

    def _path_lock(self, path: str) -> threading.Lock:
        with self._lock:
            return self._locks.setdefault(path, threading.Lock())

    def load(self, path: str) -> AudioBuffer:
        cached = self._buffers.get(path)
        if cached is not None:
            return cached
        with self._path_lock(path):
            cached = self._buffers.get(path)
            if cached is not None:
                return cached
            try:
                data = Path(path).read_bytes()
            except OSError as e:
                raise AudioDecodeError(f"Could not read {path}: {e}") from e
            try:
                buffer = self._decoder(data)
            except AudioDecodeError as e:
                raise AudioDecodeError(f"{path}: {e}") from e
            logger.info(
                "Decoded %s (%.1fs @ %d Hz)",
                Path(path).name,
                buffer.duration,
                buffer.sample_rate,
            )
            self._buffers[path] = buffer
            return buffer

    def __contains__(self, path):
        return path in self._buffers

    def __len__(self):
        return len(self._buffers)
