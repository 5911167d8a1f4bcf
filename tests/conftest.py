"""
pytest Configuration and Fixtures

Provides reusable fakes and fixtures for the studio tests:
    - FakeDecoder / FakeSink: playback without an audio device
    - FakeMicrophone: recording without a microphone
    - MemoryStorage: key/value storage kept in a dict
    - FakeRelay: httpx MockTransport standing in for the relay
"""

import json
from typing import Callable, Dict, List, Optional, Tuple

import httpx
import numpy as np
import pytest

from speechstudio.errors import DecodeError, DeviceAccessError
from speechstudio.models import Voice, VoiceCategory
from speechstudio.services.orchestrator import RequestOrchestrator
from speechstudio.services.playback import AudioOutput, DecodedAudio, PlaybackSession
from speechstudio.services.state_store import JsonFileStorage, LocalStateStore

AUDIO_BYTES = b"ID3\x03fake-mpeg-audio"
BAD_AUDIO = b"not audio at all"


class FakeDecoder:
    """Decodes anything except BAD_AUDIO into a short silent buffer."""

    def __init__(self):
        self.calls: List[bytes] = []

    async def decode(self, data: bytes) -> DecodedAudio:
        self.calls.append(data)
        if data == BAD_AUDIO:
            raise DecodeError("Unable to decode audio: bad header")
        return DecodedAudio(frames=np.zeros((800, 1), dtype=np.float32), sample_rate=8000)


class FakeSource:
    def __init__(self, audio: DecodedAudio, on_ended: Callable):
        self.audio = audio
        self.on_ended = on_ended
        self.stopped = False
        self.disconnected = False
        self.finished = False

    def stop(self) -> None:
        self.stopped = True

    def disconnect(self) -> None:
        self.disconnected = True

    @property
    def audible(self) -> bool:
        return not (self.stopped or self.finished)


class FakeSink:
    def __init__(self):
        self.sources: List[FakeSource] = []
        self.gains: List[float] = []

    def start(self, audio, output, on_ended):
        source = FakeSource(audio, on_ended)
        self.sources.append(source)
        self.gains.append(output.gain)
        return source

    def finish(self, source: FakeSource) -> None:
        """Simulate the device reaching the end of the buffer."""
        source.finished = True
        source.on_ended(source)

    @property
    def audible(self) -> List[FakeSource]:
        return [s for s in self.sources if s.audible]


class FakeHandle:
    def __init__(self):
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakeMicrophone:
    def __init__(self, fail: bool = False, sample_rate: int = 16000, channels: int = 1):
        self.fail = fail
        self.sample_rate = sample_rate
        self.channels = channels
        self.handles: List[FakeHandle] = []
        self._on_chunk: Optional[Callable] = None

    def open(self, on_chunk):
        if self.fail:
            raise DeviceAccessError("Permission denied")
        self._on_chunk = on_chunk
        handle = FakeHandle()
        self.handles.append(handle)
        return handle

    def emit(self, frames: int, value: float = 0.1) -> None:
        self._on_chunk(np.full((frames, self.channels), value, dtype=np.float32))


class MemoryStorage:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})
        self.writes: List[Tuple[str, str]] = []

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value
        self.writes.append((key, value))


VOICES_PAYLOAD = [
    {
        "voice_id": "v1",
        "name": "Rachel",
        "category": "premade",
        "preview_url": "https://cdn.example.com/v1.mp3",
        "labels": {"accent": "american"},
    },
    {"voice_id": "v2", "name": "My Clone", "category": "cloned"},
]


class FakeRelay:
    """
    Routes requests to canned responses keyed by (method, path).

    Unrouted requests get a 404 so a stray call fails loudly.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: List[httpx.Request] = []

    def route(self, method: str, path: str, response=None, handler=None) -> None:
        if handler is None:
            def handler(_request, _response=response):
                return _response
        self.routes[(method, path)] = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"error": "Not found"})
        return handler(request)

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def json_body(self, request: httpx.Request):
        return json.loads(request.content)


@pytest.fixture
def memory_storage():
    return MemoryStorage()


@pytest.fixture
def store(tmp_path):
    return LocalStateStore(JsonFileStorage(tmp_path / "state"))


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def decoder():
    return FakeDecoder()


@pytest.fixture
def playback(sink, decoder):
    return PlaybackSession(output=AudioOutput(sink_factory=lambda: sink), decoder=decoder)


@pytest.fixture
def relay():
    relay = FakeRelay()
    relay.route("GET", "/api/voices", httpx.Response(200, json=VOICES_PAYLOAD))
    relay.route(
        "POST",
        "/api/tts",
        httpx.Response(200, content=AUDIO_BYTES, headers={"content-type": "audio/mpeg"}),
    )
    return relay


@pytest.fixture
def orchestrator(store, playback, relay):
    return RequestOrchestrator(
        store,
        playback,
        base_url="http://studio.test/api",
        transport=httpx.MockTransport(relay),
    )


@pytest.fixture
def sample_voices():
    return [
        Voice(voice_id="v1", name="Rachel"),
        Voice(voice_id="v2", name="My Clone", category=VoiceCategory.CLONED),
    ]
