"""16-bit PCM conversion for the live transport.

The Live API takes little-endian signed 16-bit mono PCM at 16 kHz and
returns the same format at 24 kHz. Samples are handled in memory as
float32 in the range [-1.0, 1.0].
"""
from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from .const import CHANNELS, RECEIVE_SAMPLE_RATE
from .exceptions import DecodeError

_INT16_SCALE = 32768.0
_PCM_DTYPE = np.dtype("<i2")
_RATE_RE = re.compile(r"rate=(\d+)")


@dataclass
class AudioChunk:
    """A block of decoded audio.

    Attributes:
        samples: float32 array shaped (frames, channels).
        sample_rate: Sample rate in Hz.
        channels: Channel count.
    """

    samples: np.ndarray
    sample_rate: int
    channels: int = CHANNELS

    @property
    def frames(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration(self) -> float:
        """Nominal duration in seconds."""
        if self.sample_rate <= 0:
            return 0.0
        return self.frames / float(self.sample_rate)


def encode(samples: Sequence[float] | np.ndarray) -> bytes:
    """Convert float samples to 16-bit little-endian PCM bytes.

    Out-of-range samples are clamped, never rejected.
    """
    data = np.asarray(samples, dtype=np.float32).reshape(-1)
    data = np.nan_to_num(data, nan=0.0, posinf=1.0, neginf=-1.0)
    scaled = np.rint(np.clip(data, -1.0, 1.0) * _INT16_SCALE)
    pcm = np.clip(scaled, -_INT16_SCALE, _INT16_SCALE - 1).astype(_PCM_DTYPE)
    return pcm.tobytes()


def decode(
    data: bytes | bytearray | memoryview,
    sample_rate: int = RECEIVE_SAMPLE_RATE,
    channels: int = CHANNELS,
) -> AudioChunk:
    """Decode 16-bit little-endian PCM into an AudioChunk.

    Raises:
        DecodeError: if the payload is not bytes-like or its length is not
            a whole number of frames.
    """
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise DecodeError(f"PCM payload must be bytes-like, got {type(data).__name__}")
    if channels < 1:
        raise DecodeError(f"Invalid channel count: {channels}")
    frame_bytes = _PCM_DTYPE.itemsize * channels
    if len(data) % frame_bytes != 0:
        raise DecodeError(
            f"PCM payload of {len(data)} bytes is not a multiple of {frame_bytes}"
        )
    pcm = np.frombuffer(bytes(data), dtype=_PCM_DTYPE)
    samples = (pcm.astype(np.float32) / _INT16_SCALE).reshape(-1, channels)
    return AudioChunk(samples=samples, sample_rate=sample_rate, channels=channels)


def frame_level(samples: Sequence[float] | np.ndarray) -> float:
    """Return the root-mean-square level of a frame."""
    data = np.asarray(samples, dtype=np.float32).reshape(-1)
    if data.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(data, dtype=np.float64))))


def rate_from_mime(mime_type: str | None, default: int = RECEIVE_SAMPLE_RATE) -> int:
    """Extract the sample rate from a mime type such as ``audio/pcm;rate=24000``."""
    if not mime_type:
        return default
    match = _RATE_RE.search(mime_type)
    if not match:
        return default
    return int(match.group(1))
