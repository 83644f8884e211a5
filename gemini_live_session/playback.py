"""Gapless playback of model audio.

Chunks are laid end to end on the sink's playback clock: each one starts at
``max(cursor, now)`` and pushes the cursor forward by its duration, so
chunks never overlap, never start before they arrive, and queue back to
back when the producer runs ahead of playback.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable

import numpy as np

from .const import CHANNELS, RECEIVE_SAMPLE_RATE
from .exceptions import DeviceAccessError
from .interfaces import AudioSink, PlaybackHandle
from .pcm import AudioChunk

_LOGGER = logging.getLogger(__name__)


class PlaybackScheduler:
    """Schedule decoded chunks for sequential playback on an AudioSink."""

    def __init__(self, sink: AudioSink) -> None:
        self._sink = sink
        self._next_start_time: float = 0.0
        self._active: set[PlaybackHandle] = set()

    @property
    def sink(self) -> AudioSink:
        return self._sink

    @property
    def next_start_time(self) -> float:
        return self._next_start_time

    @property
    def pending(self) -> int:
        """Number of scheduled or playing chunks."""
        return len(self._active)

    def schedule(self, chunk: AudioChunk) -> float:
        """Schedule ``chunk`` and return its start time on the playback clock.

        Empty or silent chunks are scheduled like any other and still
        advance the cursor by their nominal duration.
        """
        start_time = max(self._next_start_time, self._sink.current_time)
        handle = self._sink.play(chunk, start_time, self._on_ended)
        self._active.add(handle)
        self._next_start_time = start_time + chunk.duration
        _LOGGER.debug(
            "Scheduled %.3fs of audio at %.3f (cursor=%.3f pending=%d)",
            chunk.duration,
            start_time,
            self._next_start_time,
            len(self._active),
        )
        return start_time

    def _on_ended(self, handle: PlaybackHandle) -> None:
        self._active.discard(handle)

    def interrupt(self) -> int:
        """Stop everything scheduled and restart the timeline at "now"."""
        stopped = self._stop_all()
        self._next_start_time = self._sink.current_time
        if stopped:
            _LOGGER.debug("Playback interrupted; stopped %d chunks", stopped)
        return stopped

    def reset(self) -> None:
        """Stop everything and rewind the cursor for a new session."""
        self._stop_all()
        self._next_start_time = 0.0

    def _stop_all(self) -> int:
        handles = list(self._active)
        self._active.clear()
        for handle in handles:
            handle.stop()
        return len(handles)


class _Voice:
    """A chunk scheduled on a SoundDeviceSink."""

    __slots__ = ("_sink", "samples", "start_frame", "on_ended")

    def __init__(
        self,
        sink: SoundDeviceSink,
        samples: np.ndarray,
        start_frame: int,
        on_ended: Callable[[PlaybackHandle], None],
    ) -> None:
        self._sink = sink
        self.samples = samples
        self.start_frame = start_frame
        self.on_ended = on_ended

    def stop(self) -> None:
        self._sink._remove_voice(self)


class SoundDeviceSink:
    """AudioSink that mixes scheduled chunks into a sounddevice output stream.

    The playback clock is the number of frames rendered by the stream, so
    scheduled start times stay sample-accurate regardless of callback
    jitter. The stream callback runs on a PortAudio thread; completions are
    handed back to the event loop.
    """

    def __init__(
        self,
        *,
        sample_rate: int = RECEIVE_SAMPLE_RATE,
        channels: int = CHANNELS,
        device: int | str | None = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.device = device
        self._lock = threading.Lock()
        self._voices: list[_Voice] = []
        self._frames_rendered = 0
        self._stream = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def current_time(self) -> float:
        with self._lock:
            return self._frames_rendered / float(self.sample_rate)

    @property
    def active(self) -> bool:
        return self._stream is not None

    def open(self) -> None:
        if self._stream is not None:
            return
        sd = _lazy_import_sounddevice()
        self._loop = asyncio.get_running_loop()
        with self._lock:
            self._frames_rendered = 0
            self._voices.clear()
        try:
            stream = sd.OutputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="float32",
                device=self.device,
                callback=self._callback,
            )
            stream.start()
        except Exception as err:
            raise DeviceAccessError(f"Audio output unavailable: {err}") from err
        self._stream = stream
        _LOGGER.debug("Audio output opened (rate=%d)", self.sample_rate)

    def play(
        self,
        chunk: AudioChunk,
        start_time: float,
        on_ended: Callable[[PlaybackHandle], None],
    ) -> PlaybackHandle:
        samples = self._prepare(chunk)
        voice = _Voice(self, samples, int(round(start_time * self.sample_rate)), on_ended)
        if samples.size == 0:
            if self._loop is not None:
                self._loop.call_soon(on_ended, voice)
            return voice
        with self._lock:
            self._voices.append(voice)
        return voice

    def _prepare(self, chunk: AudioChunk) -> np.ndarray:
        samples = np.asarray(chunk.samples, dtype=np.float32)
        if samples.ndim > 1:
            samples = samples.mean(axis=1)
        if chunk.sample_rate != self.sample_rate and samples.size:
            # Linear resample onto the output clock
            target = int(round(samples.size * self.sample_rate / chunk.sample_rate))
            positions = np.linspace(0, samples.size - 1, num=max(target, 1))
            samples = np.interp(positions, np.arange(samples.size), samples).astype(np.float32)
        return samples

    def _remove_voice(self, voice: _Voice) -> None:
        with self._lock:
            try:
                self._voices.remove(voice)
            except ValueError:
                pass

    def _callback(self, outdata, frames, time_info, status) -> None:
        if status:
            _LOGGER.debug("Output stream status: %s", status)
        mix = np.zeros(frames, dtype=np.float32)
        finished: list[_Voice] = []
        with self._lock:
            position = self._frames_rendered
            for voice in self._voices:
                offset = voice.start_frame - position
                dest = max(0, offset)
                src = max(0, -offset)
                remaining = voice.samples.size - src
                if remaining <= 0:
                    finished.append(voice)
                    continue
                if dest >= frames:
                    continue
                count = min(frames - dest, remaining)
                mix[dest:dest + count] += voice.samples[src:src + count]
                if count >= remaining:
                    finished.append(voice)
            for voice in finished:
                self._voices.remove(voice)
            self._frames_rendered += frames
        np.clip(mix, -1.0, 1.0, out=mix)
        outdata[:] = np.repeat(mix[:, None], outdata.shape[1], axis=1)
        loop = self._loop
        if loop is not None and not loop.is_closed():
            for voice in finished:
                loop.call_soon_threadsafe(voice.on_ended, voice)

    def close(self) -> None:
        stream = self._stream
        self._stream = None
        with self._lock:
            self._voices.clear()
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except Exception as err:
            _LOGGER.debug("Error closing audio output: %s", err)
        _LOGGER.debug("Audio output closed")


def _lazy_import_sounddevice():
    try:
        import sounddevice as sd  # type: ignore
    except (ImportError, OSError) as exc:  # pragma: no cover - runtime dependency
        raise DeviceAccessError(
            "sounddevice (and PortAudio) is required for audio I/O"
        ) from exc
    return sd
