"""
Studio controller: the user-facing boundary of the client.

Holds the editable state (text, settings, selected preset) and drives the
orchestrator, playback, recording and local store. Every StudioError raised
below this layer is turned into a destructive Notification here; nothing
escapes to the caller of a studio action.
"""

import logging
import random
from pathlib import Path
from typing import Any, List, Optional

from pydantic import ValidationError as PydanticValidationError

from speechstudio.errors import StudioError, ValidationError
from speechstudio.models import (
    HistoryEntry,
    Notification,
    SampleFile,
    SynthesisRequest,
    TextStats,
    VoicePreset,
    VoiceSettings,
)
from speechstudio.services.audio_service import AudioService
from speechstudio.services.orchestrator import RequestOrchestrator
from speechstudio.services.playback import AudioOutput, PlaybackSession
from speechstudio.services.recording import RecordingSession
from speechstudio.services.state_store import JsonFileStorage, LocalStateStore

logger = logging.getLogger(__name__)

EXAMPLE_TEXTS = [
    "Welcome to the future of voice technology! This AI-powered text-to-speech "
    "system creates remarkably natural voices.",
    "Imagine a world where every story comes to life through the power of "
    "artificial intelligence and natural-sounding voices.",
    "Transform your written words into captivating speech with our cutting-edge "
    "text-to-speech technology.",
]


class Studio:
    """Text-to-speech studio session."""

    def __init__(
        self,
        orchestrator: RequestOrchestrator,
        store: LocalStateStore,
        playback: PlaybackSession,
        recording: RecordingSession,
    ):
        self.orchestrator = orchestrator
        self.store = store
        self.playback = playback
        self.recording = recording

        self.text = ""
        self.settings = VoiceSettings()
        self.selected_preset_id: Optional[str] = None
        self.notifications: List[Notification] = []

    @classmethod
    def create(
        cls,
        base_url: Optional[str] = None,
        state_dir: Optional[Path] = None,
        transport=None,
        output: Optional[AudioOutput] = None,
        decoder=None,
        microphone=None,
    ) -> "Studio":
        """Wire a studio with default collaborators, overriding any given."""
        store = LocalStateStore(JsonFileStorage(state_dir))
        playback = PlaybackSession(output=output, decoder=decoder)
        orchestrator = RequestOrchestrator(store, playback, base_url=base_url, transport=transport)
        recording = RecordingSession(microphone=microphone)
        return cls(orchestrator, store, playback, recording)

    async def aclose(self) -> None:
        self.playback.stop()
        self.recording.reset()
        await self.orchestrator.aclose()

    # Notifications

    def notify(self, title: str, description: str, variant: str = "default") -> Notification:
        notification = Notification(title=title, description=description, variant=variant)
        self.notifications.append(notification)
        return notification

    def _fail(self, error: StudioError) -> None:
        logger.warning(f"{type(error).__name__}: {error}")
        self.notify(error.title, error.message, variant="destructive")

    # Text

    @property
    def text_stats(self) -> TextStats:
        return AudioService.text_stats(self.text)

    def random_example_text(self) -> str:
        self.text = random.choice(EXAMPLE_TEXTS)
        return self.text

    # Voices

    async def load_voices(self) -> None:
        try:
            await self.orchestrator.list_voices()
            # A superseded listing is not kept, so pick from the stored catalog
            catalog = self.orchestrator.voices
            if catalog and self.orchestrator.selected_voice is None:
                self.orchestrator.select_voice(catalog[0].voice_id)
        except StudioError as e:
            self._fail(e)

    def select_voice(self, voice_id: str) -> None:
        try:
            self.orchestrator.select_voice(voice_id)
        except StudioError as e:
            self._fail(e)

    async def rename_voice(self, voice_id: str, name: str) -> None:
        try:
            await self.orchestrator.rename_voice(voice_id, name)
        except StudioError as e:
            self._fail(e)
            return
        self.notify("Success", "Voice renamed successfully")

    async def delete_voice(self, voice_id: str) -> None:
        try:
            await self.orchestrator.delete_voice(voice_id)
        except StudioError as e:
            self._fail(e)
            return
        self.notify("Success", "Voice deleted successfully")

    async def preview_voice(self, voice_id: str) -> None:
        voice = self.orchestrator.get_voice(voice_id)
        try:
            if voice is None:
                raise ValidationError(f"Unknown voice: {voice_id}")
            audio = await self.orchestrator.fetch_preview(voice.preview_url or "")
            await self.playback.play(audio)
        except StudioError as e:
            self._fail(e)

    # Settings and presets

    def update_settings(self, **changes: Any) -> None:
        try:
            self.settings = VoiceSettings.model_validate({**self.settings.model_dump(), **changes})
        except PydanticValidationError as e:
            self._fail(ValidationError(f"Invalid voice settings: {e.errors()[0]['msg']}"))
            return
        self.selected_preset_id = None

    def reset_settings(self) -> None:
        self.settings = VoiceSettings()
        self.selected_preset_id = None
        self.notify("Settings Reset", "All voice settings have been reset to default values.")

    @property
    def presets(self) -> List[VoicePreset]:
        return self.store.presets

    def save_preset(self, name: str) -> Optional[VoicePreset]:
        try:
            if not name or not name.strip():
                raise ValidationError("Please enter a preset name")
            voice_id = self.orchestrator.selected_voice_id
            if not voice_id:
                raise ValidationError("Select a voice before saving a preset")
        except StudioError as e:
            self._fail(e)
            return None

        preset = self.store.add_preset(name.strip(), voice_id, self.settings)
        self.notify("Preset Saved", f'"{preset.name}" has been saved to your presets.')
        return preset

    def load_preset(self, preset_id: str) -> None:
        preset = self.store.get_preset(preset_id)
        try:
            if preset is None:
                raise ValidationError("Preset not found")
            self.orchestrator.select_voice(preset.voice_id)
        except StudioError as e:
            self._fail(e)
            return

        self.settings = preset.settings.model_copy()
        self.selected_preset_id = preset.id
        self.notify("Preset Loaded", f'"{preset.name}" settings have been applied.')

    def delete_preset(self, preset_id: str) -> None:
        if self.store.remove_preset(preset_id) and self.selected_preset_id == preset_id:
            self.selected_preset_id = None

    # Synthesis and playback

    async def generate(self) -> Optional[bytes]:
        request = SynthesisRequest(
            text=self.text,
            voice_id=self.orchestrator.selected_voice_id,
            settings=self.settings.model_copy(),
        )
        try:
            audio = await self.orchestrator.synthesize(request)
        except StudioError as e:
            self._fail(e)
            return None
        self.notify("Success", "Audio generated successfully!")
        return audio

    def stop(self) -> None:
        self.playback.stop()

    def set_volume(self, volume: float) -> None:
        self.playback.output.set_volume(volume)

    def toggle_mute(self) -> bool:
        return self.playback.output.toggle_mute()

    def export_audio(self, output_dir: Optional[Path] = None) -> Optional[Path]:
        artifact = self.orchestrator.last_artifact
        if artifact is None:
            self._fail(ValidationError("No audio available to export"))
            return None
        path = AudioService.export_artifact(artifact, output_dir)
        self.notify("Success", "Audio file downloaded successfully")
        return path

    # Local history

    @property
    def history(self) -> List[HistoryEntry]:
        return self.store.history

    def remove_history_entry(self, entry_id: str) -> None:
        self.store.remove_history(entry_id)

    def clear_history(self) -> None:
        self.store.clear_history()

    # Provider history

    async def refresh_history(self) -> None:
        try:
            await self.orchestrator.fetch_history()
        except StudioError as e:
            self._fail(e)

    async def delete_remote_history_item(self, history_item_id: str) -> None:
        try:
            await self.orchestrator.delete_history_entry(history_item_id)
        except StudioError as e:
            self._fail(e)
            return
        self.notify("Success", "History item deleted successfully")

    async def download_history_audio(
        self, history_item_id: str, output_dir: Optional[Path] = None
    ) -> Optional[Path]:
        try:
            audio = await self.orchestrator.fetch_history_audio(history_item_id)
        except StudioError as e:
            self._fail(e)
            return None
        path = AudioService.save_bytes(
            audio, AudioService.history_audio_filename(history_item_id), output_dir
        )
        self.notify("Success", "Audio downloaded successfully")
        return path

    # Cloning

    async def start_recording(self) -> None:
        try:
            await self.recording.start()
        except StudioError as e:
            self._fail(e)

    async def stop_recording(self) -> None:
        try:
            await self.recording.stop()
        except StudioError as e:
            self._fail(e)

    def reset_recording(self) -> None:
        self.recording.reset()

    def select_sample_file(self, sample: SampleFile) -> None:
        try:
            self.recording.select_file(sample)
        except StudioError as e:
            self._fail(e)

    async def clone_voice(self, name: str) -> Optional[str]:
        try:
            voice_id = await self.orchestrator.clone_voice(self.recording.current_sample(), name)
        except StudioError as e:
            self._fail(e)
            return None

        self.orchestrator.select_voice(voice_id)
        self.recording.reset()
        self.recording.clear_file()
        self.notify(
            "Success",
            "Voice cloned successfully! The new voice is now available in the voice selection.",
        )
        return voice_id
