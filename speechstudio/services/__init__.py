"""Services module."""

from .audio_service import AudioService
from .gateway import ElevenLabsGateway
from .orchestrator import RequestOrchestrator
from .playback import AudioOutput, PlaybackSession, PlaybackState
from .recording import RecordingSession, RecordingState
from .state_store import JsonFileStorage, LocalStateStore
from .studio import Studio

__all__ = [
    "AudioService",
    "ElevenLabsGateway",
    "RequestOrchestrator",
    "AudioOutput",
    "PlaybackSession",
    "PlaybackState",
    "RecordingSession",
    "RecordingState",
    "JsonFileStorage",
    "LocalStateStore",
    "Studio",
]
