"""
Playback session: decode synthesized audio and keep exactly one source playing.

The output gain stage and the device sink live on an AudioOutput owned by
the session (or shared explicitly between sessions), never in module state.
Decoding and the device itself sit behind the AudioDecoder / AudioSink
protocols so tests can run without an audio subsystem.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

import numpy as np

from speechstudio.errors import DecodeError, DeviceAccessError
from speechstudio.services.audio_service import AudioService

logger = logging.getLogger(__name__)


class PlaybackState(str, Enum):
    IDLE = "idle"
    PLAYING = "playing"


@dataclass
class DecodedAudio:
    frames: np.ndarray  # float32, shaped (frames, channels)
    sample_rate: int

    @property
    def channels(self) -> int:
        return self.frames.shape[1] if self.frames.ndim > 1 else 1

    @property
    def duration(self) -> float:
        return len(self.frames) / self.sample_rate if self.sample_rate else 0.0


class AudioDecoder(Protocol):
    async def decode(self, data: bytes) -> DecodedAudio:
        ...


class PlaybackSource(Protocol):
    def stop(self) -> None:
        ...

    def disconnect(self) -> None:
        ...


class AudioSink(Protocol):
    def start(
        self,
        audio: DecodedAudio,
        output: "AudioOutput",
        on_ended: Callable[[PlaybackSource], None],
    ) -> PlaybackSource:
        """Start playing and return the source; call on_ended(source) when it finishes."""
        ...


class SoundFileDecoder:
    """Decodes in a worker thread so the event loop keeps running."""

    async def decode(self, data: bytes) -> DecodedAudio:
        frames, sample_rate = await asyncio.to_thread(AudioService.decode_audio, data)
        return DecodedAudio(frames=frames, sample_rate=sample_rate)


class SoundDeviceSource:
    """One sounddevice output stream playing a decoded buffer."""

    def __init__(self, sd, audio: DecodedAudio, output: "AudioOutput", on_finished: Callable[[], None]):
        self._sd = sd
        self._frames = audio.frames
        self._output = output
        self._position = 0
        self._stream = sd.OutputStream(
            samplerate=audio.sample_rate,
            channels=audio.channels,
            dtype="float32",
            callback=self._callback,
            finished_callback=on_finished,
        )

    def _callback(self, outdata, frames, _time_info, status):
        if status:
            logger.debug(f"Output stream status: {status}")
        chunk = self._frames[self._position:self._position + frames]
        self._position += len(chunk)
        # Gain is read per block so volume changes apply to the live source
        outdata[:len(chunk)] = chunk * self._output.gain
        if len(chunk) < frames:
            outdata[len(chunk):] = 0
            raise self._sd.CallbackStop()

    def start(self) -> None:
        self._stream.start()

    def stop(self) -> None:
        self._stream.abort()

    def disconnect(self) -> None:
        self._stream.close()


class SoundDeviceSink:
    """Default sink backed by the sounddevice library."""

    def __init__(self):
        try:
            import sounddevice as sd
        except (ImportError, OSError) as e:
            raise DeviceAccessError(f"Audio output unavailable: {e}") from e
        self._sd = sd

    def start(self, audio, output, on_ended):
        loop = asyncio.get_running_loop()
        source: Optional[SoundDeviceSource] = None

        def _finished():
            # Runs on the PortAudio thread
            if not loop.is_closed():
                loop.call_soon_threadsafe(on_ended, source)

        try:
            source = SoundDeviceSource(self._sd, audio, output, _finished)
            source.start()
        except self._sd.PortAudioError as e:
            raise DeviceAccessError(f"Audio output unavailable: {e}") from e
        return source


class AudioOutput:
    """
    Shared output gain stage.

    Volume is 0..100 and maps to gain volume / 100. Muting remembers the
    volume it replaced so unmuting restores it exactly. The device sink is
    built on first use.
    """

    def __init__(
        self,
        sink_factory: Optional[Callable[[], AudioSink]] = None,
        volume: float = 50.0,
    ):
        self._sink_factory = sink_factory or SoundDeviceSink
        self._sink: Optional[AudioSink] = None
        self.volume = float(volume)
        self.muted = False
        self._previous_volume = self.volume

    @property
    def sink(self) -> AudioSink:
        if self._sink is None:
            self._sink = self._sink_factory()
        return self._sink

    @property
    def gain(self) -> float:
        return self.volume / 100.0

    def set_volume(self, volume: float) -> None:
        self.volume = min(100.0, max(0.0, float(volume)))
        self.muted = False

    def mute(self) -> None:
        if self.muted:
            return
        self._previous_volume = self.volume
        self.volume = 0.0
        self.muted = True

    def unmute(self) -> None:
        if not self.muted:
            return
        self.volume = self._previous_volume
        self.muted = False

    def toggle_mute(self) -> bool:
        if self.muted:
            self.unmute()
        else:
            self.mute()
        return self.muted


class PlaybackSession:
    """Plays decoded audio with at most one active source."""

    def __init__(
        self,
        output: Optional[AudioOutput] = None,
        decoder: Optional[AudioDecoder] = None,
    ):
        self.output = output if output is not None else AudioOutput()
        self.decoder = decoder if decoder is not None else SoundFileDecoder()
        self.state = PlaybackState.IDLE
        self._source: Optional[PlaybackSource] = None
        self._generation = 0

    @property
    def is_playing(self) -> bool:
        return self.state is PlaybackState.PLAYING

    @property
    def has_source(self) -> bool:
        return self._source is not None

    def _release(self) -> None:
        source, self._source = self._source, None
        if source is not None:
            source.stop()
            source.disconnect()

    async def play(self, data: bytes) -> None:
        """Decode and play, replacing whatever is playing now."""
        self.stop()
        generation = self._generation
        self.state = PlaybackState.PLAYING

        try:
            audio = await self.decoder.decode(data)
        except DecodeError:
            if generation == self._generation:
                self.state = PlaybackState.IDLE
            raise
        except Exception as e:
            if generation == self._generation:
                self.state = PlaybackState.IDLE
            raise DecodeError(f"Unable to decode audio: {e}") from e

        if generation != self._generation:
            # stop() or a newer play() ran while decoding
            logger.debug("Discarding superseded playback")
            return

        self._release()
        try:
            self._source = self.output.sink.start(audio, self.output, self._on_source_ended)
        except Exception:
            self.state = PlaybackState.IDLE
            raise
        logger.info(f"Playing {audio.duration:.1f}s of audio")

    def stop(self) -> None:
        """Halt and release the active source. No-op when idle."""
        self._generation += 1
        self._release()
        self.state = PlaybackState.IDLE

    def _on_source_ended(self, source: PlaybackSource) -> None:
        if source is None or source is not self._source:
            return
        self._source = None
        source.disconnect()
        self.state = PlaybackState.IDLE
        logger.debug("Playback finished")
