"""Data models for the application."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class VoiceCategory(str, Enum):
    """Voice category enumeration."""
    BUILT_IN = "built-in"
    CLONED = "cloned"


class Voice(BaseModel):
    """A voice known to the provider."""
    voice_id: str
    name: str
    category: VoiceCategory = VoiceCategory.BUILT_IN
    preview_url: Optional[str] = None
    labels: Optional[Dict[str, Any]] = None

    @field_validator("category", mode="before")
    @classmethod
    def _map_provider_category(cls, value):
        # The provider reports premade/generated/professional/cloned
        if isinstance(value, VoiceCategory):
            return value
        if value == VoiceCategory.CLONED.value:
            return VoiceCategory.CLONED
        return VoiceCategory.BUILT_IN


class VoiceSettings(BaseModel):
    """Synthesis settings bundle."""
    stability: float = Field(default=0.5, ge=0.0, le=1.0)
    similarity_boost: float = Field(default=0.75, ge=0.0, le=1.0)
    style: float = Field(default=0.0, ge=0.0, le=1.0)
    use_speaker_boost: bool = True


class SynthesisRequest(BaseModel):
    """TTS request as issued by the studio client."""
    model_config = ConfigDict(protected_namespaces=())

    text: str
    voice_id: Optional[str] = None
    settings: VoiceSettings = Field(default_factory=VoiceSettings)
    model_id: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """Body for the relay's /tts endpoint."""
        payload = {
            "text": self.text,
            "voiceId": self.voice_id,
            **self.settings.model_dump(),
        }
        if self.model_id:
            payload["modelId"] = self.model_id
        return payload


class AudioArtifact(BaseModel):
    """A single piece of synthesized audio. Never mutated after creation."""
    model_config = ConfigDict(frozen=True)

    data: bytes
    text: str
    voice_id: str
    created_at: datetime = Field(default_factory=datetime.now)
    content_type: str = "audio/mpeg"


class HistoryEntry(BaseModel):
    """Local record of a past synthesis."""
    id: str
    text: str
    voice_id: str
    voice_name: str
    timestamp: datetime = Field(default_factory=datetime.now)
    duration: int = 0


class VoicePreset(BaseModel):
    """Named snapshot of a voice and its settings."""
    id: str
    name: str
    voice_id: str
    settings: VoiceSettings


class RemoteHistoryItem(BaseModel):
    """History record stored by the provider."""
    history_item_id: str
    text: str = ""
    voice_id: Optional[str] = None
    voice_name: Optional[str] = None
    date_unix: Optional[int] = None
    character_count_change_from: Optional[int] = None
    character_count_change_to: Optional[int] = None
    content_type: Optional[str] = None
    state: Optional[str] = None
    settings: Optional[Dict[str, Any]] = None


class SampleFile(BaseModel):
    """An audio or video sample offered for voice cloning."""
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


class RecordedSample(BaseModel):
    """A finalized microphone take, WAV encoded."""
    model_config = ConfigDict(frozen=True)

    data: bytes
    sample_rate: int
    duration: float
    created_at: datetime = Field(default_factory=datetime.now)

    def to_sample_file(self) -> SampleFile:
        stamp = self.created_at.strftime("%Y%m%d_%H%M%S")
        return SampleFile(
            filename=f"recording_{stamp}.wav",
            content_type="audio/wav",
            data=self.data,
        )


class TextStats(BaseModel):
    """Character/word counts and spoken duration estimate for a text."""
    characters: int = 0
    words: int = 0
    estimated_duration: int = 0


class Notification(BaseModel):
    """User-facing message produced by a studio action."""
    title: str
    description: str
    variant: Literal["default", "destructive"] = "default"
    created_at: datetime = Field(default_factory=datetime.now)


# Relay request/response bodies

class TTSRequest(BaseModel):
    """Body accepted by the relay's /tts endpoint."""
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    text: str
    voice_id: str = Field(alias="voiceId")
    model_id: Optional[str] = Field(default=None, alias="modelId")
    stability: float = Field(default=0.5, ge=0.0, le=1.0)
    similarity_boost: float = Field(default=0.75, ge=0.0, le=1.0)
    style: float = Field(default=0.0, ge=0.0, le=1.0)
    use_speaker_boost: bool = True

    def voice_settings(self) -> VoiceSettings:
        return VoiceSettings(
            stability=self.stability,
            similarity_boost=self.similarity_boost,
            style=self.style,
            use_speaker_boost=self.use_speaker_boost,
        )


class RenameVoiceRequest(BaseModel):
    """Body accepted by the relay's rename endpoint."""
    name: str


class CloneVoiceResponse(BaseModel):
    """Relay response for a successful clone."""
    voice_id: str
    success: bool = True
    message: str = "Voice cloned successfully"

