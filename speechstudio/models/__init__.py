"""Models module."""
from .voice_model import (
    AudioArtifact,
    CloneVoiceResponse,
    HistoryEntry,
    Notification,
    RecordedSample,
    RemoteHistoryItem,
    RenameVoiceRequest,
    SampleFile,
    SynthesisRequest,
    TextStats,
    TTSRequest,
    Voice,
    VoiceCategory,
    VoicePreset,
    VoiceSettings,
)

__all__ = [
    "AudioArtifact",
    "CloneVoiceResponse",
    "HistoryEntry",
    "Notification",
    "RecordedSample",
    "RemoteHistoryItem",
    "RenameVoiceRequest",
    "SampleFile",
    "SynthesisRequest",
    "TextStats",
    "TTSRequest",
    "Voice",
    "VoiceCategory",
    "VoicePreset",
    "VoiceSettings",
]
