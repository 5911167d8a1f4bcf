"""Microphone capture of a single voice sample for cloning."""

import asyncio
import contextlib
import logging
from enum import Enum
from typing import Callable, List, Optional, Protocol

import numpy as np

from speechstudio.config import settings
from speechstudio.errors import DeviceAccessError, ValidationError
from speechstudio.models import RecordedSample, SampleFile
from speechstudio.services.audio_service import AudioService

logger = logging.getLogger(__name__)


class RecordingState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"


class CaptureHandle(Protocol):
    def close(self) -> None:
        """Stop capturing and release the device."""
        ...


class MicrophoneCapture(Protocol):
    sample_rate: int
    channels: int

    def open(self, on_chunk: Callable[[np.ndarray], None]) -> CaptureHandle:
        """Acquire the device and deliver float32 chunks to on_chunk on the event loop."""
        ...


class SoundDeviceMicrophone:
    """Default microphone backed by a sounddevice input stream."""

    def __init__(
        self,
        sample_rate: Optional[int] = None,
        channels: Optional[int] = None,
        device: Optional[int] = None,
    ):
        self.sample_rate = sample_rate or settings.SAMPLE_RATE
        self.channels = channels or settings.RECORDING_CHANNELS
        self.device = device

    def open(self, on_chunk):
        try:
            import sounddevice as sd
        except (ImportError, OSError) as e:
            raise DeviceAccessError(f"Microphone unavailable: {e}") from e

        loop = asyncio.get_running_loop()

        def audio_callback(indata, _frames, _time_info, status):
            if status:
                logger.debug(f"Input stream status: {status}")
            loop.call_soon_threadsafe(on_chunk, indata.copy())

        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="float32",
                device=self.device,
                callback=audio_callback,
            )
            stream.start()
        except sd.PortAudioError as e:
            raise DeviceAccessError(f"Microphone unavailable: {e}") from e
        return stream


class RecordingSession:
    """
    Idle -> Recording -> Idle with a finalized sample.

    A finalized take has to be discarded with reset() before recording
    again. Selecting an uploaded file replaces any take, and starting a
    recording clears the selected file.
    """

    def __init__(self, microphone: Optional[MicrophoneCapture] = None, tick_interval: float = 1.0):
        self.microphone = microphone if microphone is not None else SoundDeviceMicrophone()
        self.tick_interval = tick_interval
        self.state = RecordingState.IDLE
        self.duration = 0
        self.sample: Optional[RecordedSample] = None
        self.selected_file: Optional[SampleFile] = None
        self._chunks: List[np.ndarray] = []
        self._capturing = False
        self._handle: Optional[CaptureHandle] = None
        self._ticker: Optional[asyncio.Task] = None

    @property
    def is_recording(self) -> bool:
        return self.state is RecordingState.RECORDING

    async def start(self) -> None:
        if self.is_recording or self._capturing:
            raise ValidationError("A recording is already in progress")
        if self.sample is not None:
            raise ValidationError("Reset the current recording before recording again")

        self._chunks = []
        try:
            handle = self.microphone.open(self._on_chunk)
        except DeviceAccessError:
            logger.error("Microphone access failed")
            raise
        except Exception as e:
            logger.error(f"Microphone access failed: {e}")
            raise DeviceAccessError(f"Microphone unavailable: {e}") from e

        self._handle = handle
        self.selected_file = None
        self.duration = 0
        self._capturing = True
        self.state = RecordingState.RECORDING
        self._ticker = asyncio.create_task(self._tick())
        logger.info("Recording started")

    async def stop(self) -> RecordedSample:
        """Release the device and finalize everything captured so far."""
        if not self.is_recording:
            raise ValidationError("No recording in progress")

        self.state = RecordingState.IDLE
        self._close_device()
        # Let chunks the device queued before closing reach _on_chunk
        await asyncio.sleep(0)
        self._capturing = False
        await self._stop_ticker()

        channels = self.microphone.channels
        if self._chunks:
            frames = np.concatenate(self._chunks, axis=0)
        else:
            frames = np.zeros((0, channels), dtype=np.float32)
        self._chunks = []

        sample_rate = self.microphone.sample_rate
        self.sample = RecordedSample(
            data=AudioService.encode_wav(frames, sample_rate),
            sample_rate=sample_rate,
            duration=len(frames) / sample_rate,
        )
        logger.info(f"Recording finalized ({self.sample.duration:.1f}s)")
        return self.sample

    def reset(self) -> None:
        """Discard any take (aborting one in progress) and return to Idle."""
        if self.is_recording:
            self._close_device()
            if self._ticker is not None:
                self._ticker.cancel()
                self._ticker = None
        self._capturing = False
        self.state = RecordingState.IDLE
        self.sample = None
        self.duration = 0
        self._chunks = []

    def select_file(self, sample_file: SampleFile) -> None:
        AudioService.validate_sample(sample_file)
        self.reset()
        self.selected_file = sample_file

    def clear_file(self) -> None:
        self.selected_file = None

    def current_sample(self) -> Optional[SampleFile]:
        """The uploaded file or the finalized recording, whichever is set."""
        if self.selected_file is not None:
            return self.selected_file
        if self.sample is not None:
            return self.sample.to_sample_file()
        return None

    def _on_chunk(self, chunk: np.ndarray) -> None:
        if self._capturing:
            self._chunks.append(chunk)

    def _close_device(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.close()

    async def _stop_ticker(self) -> None:
        ticker, self._ticker = self._ticker, None
        if ticker is None:
            return
        ticker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await ticker

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            self.duration += 1
