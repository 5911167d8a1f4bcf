"""sounddevice-backed sink and microphone, exercised against a mocked module."""

import asyncio
import sys
from unittest import mock

import numpy as np
import pytest

from speechstudio.errors import DeviceAccessError
from speechstudio.services.playback import (
    AudioOutput,
    DecodedAudio,
    SoundDeviceSink,
    SoundDeviceSource,
)
from speechstudio.services.recording import SoundDeviceMicrophone


class _PortAudioError(Exception):
    pass


class _CallbackStop(Exception):
    pass


@pytest.fixture
def fake_sd():
    sd = mock.MagicMock()
    sd.PortAudioError = _PortAudioError
    sd.CallbackStop = _CallbackStop
    with mock.patch.dict(sys.modules, {"sounddevice": sd}):
        yield sd


def _audio(frames=6):
    return DecodedAudio(frames=np.ones((frames, 1), dtype=np.float32), sample_rate=8000)


@pytest.mark.unit
class TestSoundDeviceSource:
    def test_callback_applies_gain_and_stops_at_end(self, fake_sd):
        output = AudioOutput(sink_factory=mock.MagicMock(), volume=50)
        source = SoundDeviceSource(fake_sd, _audio(6), output, on_finished=mock.MagicMock())

        block = np.zeros((4, 1), dtype=np.float32)
        source._callback(block, 4, None, None)
        assert np.allclose(block, 0.5)

        output.set_volume(100)
        block = np.full((4, 1), 9.0, dtype=np.float32)
        with pytest.raises(_CallbackStop):
            source._callback(block, 4, None, None)
        assert np.allclose(block[:2], 1.0)
        assert np.allclose(block[2:], 0.0)

    def test_stop_and_disconnect_map_to_stream_calls(self, fake_sd):
        source = SoundDeviceSource(fake_sd, _audio(), AudioOutput(), on_finished=mock.MagicMock())
        stream = fake_sd.OutputStream.return_value

        source.stop()
        source.disconnect()

        stream.abort.assert_called_once()
        stream.close.assert_called_once()


@pytest.mark.unit
class TestSoundDeviceSink:
    def test_missing_library_is_device_error(self):
        with mock.patch.dict(sys.modules, {"sounddevice": None}):
            with pytest.raises(DeviceAccessError):
                SoundDeviceSink()

    @pytest.mark.asyncio
    async def test_finished_callback_reenters_loop(self, fake_sd):
        on_ended = mock.MagicMock()
        source = SoundDeviceSink().start(_audio(), AudioOutput(), on_ended)

        fake_sd.OutputStream.return_value.start.assert_called_once()
        finished = fake_sd.OutputStream.call_args.kwargs["finished_callback"]
        finished()
        await asyncio.sleep(0)

        on_ended.assert_called_once_with(source)

    @pytest.mark.asyncio
    async def test_portaudio_error_is_device_error(self, fake_sd):
        fake_sd.OutputStream.side_effect = _PortAudioError("no default output device")

        with pytest.raises(DeviceAccessError):
            SoundDeviceSink().start(_audio(), AudioOutput(), mock.MagicMock())


@pytest.mark.unit
class TestSoundDeviceMicrophone:
    @pytest.mark.asyncio
    async def test_chunks_are_delivered_on_the_loop(self, fake_sd):
        received = []
        mic = SoundDeviceMicrophone(sample_rate=16000, channels=1)

        stream = mic.open(received.append)

        kwargs = fake_sd.InputStream.call_args.kwargs
        assert kwargs["samplerate"] == 16000
        assert kwargs["channels"] == 1
        stream.start.assert_called_once()

        indata = np.full((32, 1), 0.25, dtype=np.float32)
        kwargs["callback"](indata, 32, None, None)
        indata[:] = 0
        await asyncio.sleep(0)

        assert len(received) == 1
        assert np.allclose(received[0], 0.25)

    @pytest.mark.asyncio
    async def test_denied_microphone_is_device_error(self, fake_sd):
        fake_sd.InputStream.side_effect = _PortAudioError("permission denied")

        with pytest.raises(DeviceAccessError):
            SoundDeviceMicrophone().open(lambda chunk: None)
