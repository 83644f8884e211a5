"""Microphone and camera capture for live sessions.

The microphone delivers 4096-sample mono float32 frames at 16 kHz from a
sounddevice input stream. At most one frame waits between the device
callback and the sender; while one is pending newer frames are dropped
rather than queued, so a slow link never builds a backlog.

The camera grabs single frames with OpenCV, downsamples them to 320x240
and encodes them as JPEG with Pillow.
"""
from __future__ import annotations

import asyncio
import base64
import io
import logging
import threading
from collections.abc import AsyncIterator
from dataclasses import dataclass

import numpy as np

from .const import (
    CHANNELS,
    MIC_FRAME_SIZE,
    MIC_QUEUE_MAXSIZE,
    SEND_SAMPLE_RATE,
    VIDEO_HEIGHT,
    VIDEO_JPEG_QUALITY,
    VIDEO_MIME_TYPE,
    VIDEO_WIDTH,
)
from .exceptions import DeviceAccessError

_LOGGER = logging.getLogger(__name__)

# Sentinel pushed into the frame queue when the stream stops
_END = None


@dataclass
class VideoFrame:
    """One encoded camera frame ready for transmission."""

    data: bytes
    mime_type: str = VIDEO_MIME_TYPE
    width: int = VIDEO_WIDTH
    height: int = VIDEO_HEIGHT

    @property
    def base64(self) -> str:
        return base64.b64encode(self.data).decode("utf-8")


class MicrophoneCapture:
    """Capture fixed-size frames from the default (or given) input device.

    Args:
        sample_rate: Capture rate in Hz.
        frame_size: Samples per frame.
        device: Optional sounddevice device index or name.
    """

    def __init__(
        self,
        *,
        sample_rate: int = SEND_SAMPLE_RATE,
        frame_size: int = MIC_FRAME_SIZE,
        device: int | str | None = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.frame_size = frame_size
        self.device = device
        self._stream = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue | None = None
        self.dropped_frames = 0

    @property
    def active(self) -> bool:
        return self._stream is not None

    async def start(self) -> None:
        """Open the input stream.

        Raises:
            DeviceAccessError: if the device is denied or unavailable.
        """
        if self._stream is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue(maxsize=MIC_QUEUE_MAXSIZE)
        self.dropped_frames = 0
        sd = _lazy_import_sounddevice()
        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=CHANNELS,
                dtype="float32",
                blocksize=self.frame_size,
                device=self.device,
                callback=self._callback,
            )
            stream.start()
        except Exception as err:
            raise DeviceAccessError(f"Microphone unavailable: {err}") from err
        self._stream = stream
        _LOGGER.info("Microphone opened (rate=%d frame=%d)", self.sample_rate, self.frame_size)

    def _callback(self, indata, frames, time_info, status) -> None:
        if status:
            _LOGGER.debug("Input stream status: %s", status)
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        frame = np.array(indata[:, 0], dtype=np.float32, copy=True)
        loop.call_soon_threadsafe(self._offer, frame)

    def _offer(self, frame: np.ndarray | None) -> None:
        """Hand a frame to the consumer, dropping it if one is already pending."""
        queue = self._queue
        if queue is None:
            return
        try:
            queue.put_nowait(frame)
        except asyncio.QueueFull:
            self.dropped_frames += 1
            _LOGGER.debug("Dropping microphone frame; sender busy (dropped=%d)", self.dropped_frames)

    async def frames(self) -> AsyncIterator[np.ndarray]:
        """Yield frames until the microphone is stopped."""
        queue = self._queue
        if queue is None:
            return
        while True:
            frame = await queue.get()
            if frame is _END:
                return
            yield frame

    async def stop(self) -> None:
        stream = self._stream
        self._stream = None
        if stream is not None:
            try:
                stream.stop()
                stream.close()
            except Exception as err:
                _LOGGER.debug("Error closing microphone: %s", err)
            _LOGGER.info("Microphone closed")
        queue = self._queue
        if queue is not None:
            # Make room for the end marker so the consumer wakes up
            while not queue.empty():
                queue.get_nowait()
            queue.put_nowait(_END)
        self._queue = None


class CameraCapture:
    """Grab downsampled JPEG stills from a camera."""

    def __init__(
        self,
        *,
        index: int = 0,
        width: int = VIDEO_WIDTH,
        height: int = VIDEO_HEIGHT,
        quality: int = VIDEO_JPEG_QUALITY,
    ) -> None:
        self.index = index
        self.width = width
        self.height = height
        self.quality = quality
        self._capture = None
        # VideoCapture is not thread-safe; read and release never overlap
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._capture is not None

    async def start(self) -> None:
        """Open the camera.

        Raises:
            DeviceAccessError: if the camera is denied or unavailable.
        """
        if self._capture is not None:
            return
        cv2 = _lazy_import_cv2()
        # Opening a camera can take around a second; keep it off the loop
        capture = await asyncio.to_thread(cv2.VideoCapture, self.index)
        if not capture.isOpened():
            capture.release()
            raise DeviceAccessError(f"Camera {self.index} unavailable")
        self._capture = capture
        _LOGGER.info("Camera %s opened", self.index)

    def capture(self) -> VideoFrame | None:
        """Grab and encode one frame (blocking; run in a worker thread)."""
        with self._lock:
            capture = self._capture
            if capture is None:
                return None
            ok, frame = capture.read()
        cv2 = _lazy_import_cv2()
        if not ok or frame is None:
            _LOGGER.debug("Camera returned no frame")
            return None
        frame = cv2.resize(frame, (self.width, self.height), interpolation=cv2.INTER_AREA)
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        return VideoFrame(
            data=encode_jpeg(rgb, self.quality),
            width=self.width,
            height=self.height,
        )

    async def stop(self) -> None:
        await asyncio.to_thread(self._release)

    def _release(self) -> None:
        with self._lock:
            capture = self._capture
            self._capture = None
            if capture is not None:
                capture.release()
                _LOGGER.info("Camera %s released", self.index)


def encode_jpeg(rgb: np.ndarray, quality: int = VIDEO_JPEG_QUALITY) -> bytes:
    """Encode an RGB array as JPEG."""
    from PIL import Image

    image = Image.fromarray(np.asarray(rgb, dtype=np.uint8))
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


def _lazy_import_sounddevice():
    try:
        import sounddevice as sd  # type: ignore
    except (ImportError, OSError) as exc:  # pragma: no cover - runtime dependency
        raise DeviceAccessError("sounddevice (and PortAudio) is required for microphone capture") from exc
    return sd


def _lazy_import_cv2():
    try:
        import cv2  # type: ignore
    except ImportError as exc:  # pragma: no cover - runtime dependency
        raise DeviceAccessError("opencv is required for camera capture") from exc
    return cv2
