"""
Tests for the playback scheduler and the sounddevice sink mixer.
"""
import asyncio

import numpy as np
import pytest

from gemini_live_session.pcm import AudioChunk
from gemini_live_session.playback import PlaybackScheduler, SoundDeviceSink

from conftest import FakeSink


def chunk(seconds: float, rate: int = 24000) -> AudioChunk:
    frames = int(round(seconds * rate))
    return AudioChunk(samples=np.zeros((frames, 1), dtype=np.float32), sample_rate=rate)


class TestScheduler:

    def test_chunks_queue_back_to_back(self):
        sink = FakeSink()
        scheduler = PlaybackScheduler(sink)
        starts = [scheduler.schedule(chunk(d)) for d in (0.5, 0.25, 1.0)]
        assert starts == pytest.approx([0.0, 0.5, 0.75])
        assert scheduler.next_start_time == pytest.approx(1.75)
        assert scheduler.pending == 3

    def test_late_chunk_starts_now(self):
        sink = FakeSink()
        scheduler = PlaybackScheduler(sink)
        scheduler.schedule(chunk(0.5))
        sink.current_time = 3.0
        assert scheduler.schedule(chunk(0.5)) == pytest.approx(3.0)
        assert scheduler.next_start_time == pytest.approx(3.5)

    def test_no_overlap_when_clock_moves_mid_stream(self):
        sink = FakeSink()
        scheduler = PlaybackScheduler(sink)
        durations = [0.2, 0.3, 0.1, 0.4]
        for i, d in enumerate(durations):
            sink.current_time = i * 0.1
            scheduler.schedule(chunk(d))
        spans = [(h.start_time, h.start_time + h.chunk.duration) for h in sink.played]
        for (_, end), (start, _) in zip(spans, spans[1:]):
            assert start >= end - 1e-9

    def test_empty_chunk_still_scheduled(self):
        sink = FakeSink()
        scheduler = PlaybackScheduler(sink)
        scheduler.schedule(chunk(0.5))
        start = scheduler.schedule(chunk(0.0))
        assert start == pytest.approx(0.5)
        assert scheduler.next_start_time == pytest.approx(0.5)
        assert len(sink.played) == 2

    def test_finished_chunks_leave_active_set(self):
        sink = FakeSink()
        scheduler = PlaybackScheduler(sink)
        scheduler.schedule(chunk(0.1))
        scheduler.schedule(chunk(0.1))
        sink.played[0].finish()
        assert scheduler.pending == 1

    def test_interrupt_stops_everything_and_resets_cursor(self):
        sink = FakeSink()
        scheduler = PlaybackScheduler(sink)
        for _ in range(3):
            scheduler.schedule(chunk(1.0))
        sink.current_time = 1.2
        assert scheduler.interrupt() == 3
        assert all(h.stopped for h in sink.played)
        assert scheduler.pending == 0
        assert scheduler.next_start_time == pytest.approx(1.2)
        # Next chunk plays immediately, not after the cancelled backlog
        assert scheduler.schedule(chunk(0.5)) == pytest.approx(1.2)

    def test_reset_rewinds(self):
        sink = FakeSink()
        scheduler = PlaybackScheduler(sink)
        scheduler.schedule(chunk(1.0))
        scheduler.reset()
        assert scheduler.next_start_time == 0.0
        assert scheduler.pending == 0


class TestSoundDeviceSink:
    """Exercise the mixer directly; no output stream is opened."""

    def test_callback_mixes_at_start_frame(self):
        sink = SoundDeviceSink(sample_rate=10)
        samples = np.full((4, 1), 0.5, dtype=np.float32)
        ended = []
        sink.play(AudioChunk(samples=samples, sample_rate=10), 0.2, ended.append)
        out = np.zeros((8, 1), dtype=np.float32)
        sink._callback(out, 8, None, None)
        assert out[:, 0].tolist() == pytest.approx([0, 0, 0.5, 0.5, 0.5, 0.5, 0, 0])
        assert sink.current_time == pytest.approx(0.8)

    def test_voice_spanning_blocks(self):
        sink = SoundDeviceSink(sample_rate=10)
        samples = np.arange(1, 7, dtype=np.float32).reshape(-1, 1) / 10
        sink.play(AudioChunk(samples=samples, sample_rate=10), 0.0, lambda h: None)
        first = np.zeros((4, 1), dtype=np.float32)
        second = np.zeros((4, 1), dtype=np.float32)
        sink._callback(first, 4, None, None)
        sink._callback(second, 4, None, None)
        assert first[:, 0].tolist() == pytest.approx([0.1, 0.2, 0.3, 0.4])
        assert second[:, 0].tolist() == pytest.approx([0.5, 0.6, 0.0, 0.0])

    def test_stopped_voice_is_silent(self):
        sink = SoundDeviceSink(sample_rate=10)
        handle = sink.play(
            AudioChunk(samples=np.ones((4, 1), dtype=np.float32), sample_rate=10),
            0.0,
            lambda h: None,
        )
        handle.stop()
        out = np.zeros((4, 1), dtype=np.float32)
        sink._callback(out, 4, None, None)
        assert not out.any()

    def test_resamples_to_output_rate(self):
        sink = SoundDeviceSink(sample_rate=20)
        prepared = sink._prepare(AudioChunk(samples=np.ones((10, 1), dtype=np.float32), sample_rate=10))
        assert prepared.size == 20

    async def test_completion_is_delivered_on_loop(self):
        sink = SoundDeviceSink(sample_rate=10)
        sink._loop = asyncio.get_running_loop()
        ended = []
        sink.play(AudioChunk(samples=np.ones((2, 1), dtype=np.float32), sample_rate=10), 0.0, ended.append)
        sink._callback(np.zeros((4, 1), dtype=np.float32), 4, None, None)
        await asyncio.sleep(0)
        assert len(ended) == 1
