"""
Request orchestrator: every call the studio makes to the relay.

Responsibilities:
    - local validation before anything touches the network
    - per-operation loading flags, always lowered on settle
    - mapping transport/HTTP/body failures to RemoteOperationError
    - the synthesize side effects: artifact, then history, then playback
    - discarding stale completions: each call gets a sequence number per
      operation kind, and only the newest call may replace shared state

No call is retried; failures are raised for the caller to handle.
"""

import contextlib
import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Union
from urllib.parse import quote

import httpx

from speechstudio.config import settings
from speechstudio.errors import ProviderContractError, RemoteOperationError, ValidationError
from speechstudio.models import (
    AudioArtifact,
    HistoryEntry,
    RecordedSample,
    RemoteHistoryItem,
    SampleFile,
    SynthesisRequest,
    Voice,
    VoiceCategory,
)
from speechstudio.services.audio_service import AudioService
from speechstudio.services.playback import PlaybackSession
from speechstudio.services.state_store import LocalStateStore

logger = logging.getLogger(__name__)

LIST_VOICES = "list_voices"
SYNTHESIZE = "synthesize"
CLONE_VOICE = "clone_voice"
RENAME_VOICE = "rename_voice"
DELETE_VOICE = "delete_voice"
FETCH_HISTORY = "fetch_history"
DELETE_HISTORY_ENTRY = "delete_history_entry"
FETCH_HISTORY_AUDIO = "fetch_history_audio"
FETCH_PREVIEW = "fetch_preview"

OPERATIONS = (
    LIST_VOICES,
    SYNTHESIZE,
    CLONE_VOICE,
    RENAME_VOICE,
    DELETE_VOICE,
    FETCH_HISTORY,
    DELETE_HISTORY_ENTRY,
    FETCH_HISTORY_AUDIO,
    FETCH_PREVIEW,
)

Samples = Union[None, SampleFile, RecordedSample, Sequence[Union[SampleFile, RecordedSample]]]


def _relay_error(response: httpx.Response, default: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return default
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return default


def _as_sample_files(samples: Samples) -> List[SampleFile]:
    if samples is None:
        return []
    if isinstance(samples, (SampleFile, RecordedSample)):
        samples = [samples]
    return [s.to_sample_file() if isinstance(s, RecordedSample) else s for s in samples]


class RequestOrchestrator:
    """Issues studio operations against the relay and keeps the voice catalog."""

    def __init__(
        self,
        store: LocalStateStore,
        playback: PlaybackSession,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.store = store
        self.playback = playback
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.STUDIO_API_URL).rstrip("/"),
            timeout=timeout if timeout is not None else settings.REQUEST_TIMEOUT,
            transport=transport,
        )

        self.voices: List[Voice] = []
        self.selected_voice_id: Optional[str] = None
        self.remote_history: List[RemoteHistoryItem] = []
        self.last_artifact: Optional[AudioArtifact] = None

        self._in_flight: Dict[str, int] = defaultdict(int)
        self._issued: Dict[str, int] = defaultdict(int)

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Loading flags and sequencing
    # ------------------------------------------------------------------

    def is_loading(self, operation: str) -> bool:
        return self._in_flight[operation] > 0

    @property
    def loading(self) -> Dict[str, bool]:
        return {op: self.is_loading(op) for op in OPERATIONS}

    @contextlib.asynccontextmanager
    async def _track(self, operation: str):
        self._issued[operation] += 1
        sequence = self._issued[operation]
        self._in_flight[operation] += 1
        try:
            yield sequence
        finally:
            self._in_flight[operation] -= 1

    def _is_current(self, operation: str, sequence: int) -> bool:
        return sequence == self._issued[operation]

    async def _send(
        self, operation: str, method: str, url: str, default_error: str, **kwargs
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{operation}: request failed: {e}")
            raise RemoteOperationError(operation, default_error) from e

        if response.is_error:
            message = _relay_error(response, default_error)
            logger.error(f"{operation}: {response.status_code} {message}")
            raise RemoteOperationError(operation, message, response.status_code)
        return response

    @staticmethod
    def _json(operation: str, response: httpx.Response):
        try:
            return response.json()
        except ValueError as e:
            raise RemoteOperationError(
                operation, "Malformed response from server", response.status_code
            ) from e

    # ------------------------------------------------------------------
    # Voices
    # ------------------------------------------------------------------

    def get_voice(self, voice_id: Optional[str]) -> Optional[Voice]:
        return next((v for v in self.voices if v.voice_id == voice_id), None)

    @property
    def selected_voice(self) -> Optional[Voice]:
        return self.get_voice(self.selected_voice_id)

    def select_voice(self, voice_id: Optional[str]) -> None:
        if voice_id is not None and self.get_voice(voice_id) is None:
            raise ValidationError(f"Unknown voice: {voice_id}")
        self.selected_voice_id = voice_id

    async def list_voices(self) -> List[Voice]:
        async with self._track(LIST_VOICES) as sequence:
            response = await self._send(LIST_VOICES, "GET", "/voices", "Failed to fetch voices")
            data = self._json(LIST_VOICES, response)
            try:
                if not isinstance(data, list):
                    raise ValueError("voice list is not a list")
                voices = [Voice.model_validate(item) for item in data]
            except ValueError as e:
                raise RemoteOperationError(LIST_VOICES, f"Malformed voice list: {e}") from e

            if self._is_current(LIST_VOICES, sequence):
                self.voices = voices
            logger.info(f"Fetched {len(voices)} voices")
            return voices

    async def clone_voice(self, samples: Samples, name: str) -> str:
        files = _as_sample_files(samples)
        if not files:
            raise ValidationError("You must provide at least one audio sample")
        if not name or not name.strip():
            raise ValidationError("Please enter a name for the new voice")
        for sample in files:
            AudioService.validate_sample(sample)

        async with self._track(CLONE_VOICE):
            response = await self._send(
                CLONE_VOICE,
                "POST",
                "/clone-voice",
                "Failed to clone voice",
                data={"name": name},
                files=[("files", (f.filename, f.data, f.content_type)) for f in files],
            )
            data = self._json(CLONE_VOICE, response)
            voice_id = data.get("voice_id") if isinstance(data, dict) else None
            if not voice_id:
                raise ProviderContractError(
                    CLONE_VOICE, "Invalid response from voice cloning service", response.status_code
                )

            voice = Voice(voice_id=voice_id, name=name, category=VoiceCategory.CLONED)
            self.voices = [v for v in self.voices if v.voice_id != voice_id] + [voice]
            logger.info(f"Cloned voice {name} ({voice_id})")
            return voice_id

    async def rename_voice(self, voice_id: str, name: str) -> None:
        if not voice_id:
            raise ValidationError("No voice selected")
        if not name or not name.strip():
            raise ValidationError("Please enter a new name")

        async with self._track(RENAME_VOICE):
            await self._send(
                RENAME_VOICE,
                "POST",
                f"/clone-voice/{quote(voice_id, safe='')}/name",
                "Failed to rename voice",
                json={"name": name},
            )
            self.voices = [
                v.model_copy(update={"name": name}) if v.voice_id == voice_id else v
                for v in self.voices
            ]

    async def delete_voice(self, voice_id: str) -> None:
        if not voice_id:
            raise ValidationError("No voice selected")

        async with self._track(DELETE_VOICE):
            await self._send(
                DELETE_VOICE,
                "DELETE",
                f"/clone-voice/{quote(voice_id, safe='')}",
                "Failed to delete voice",
            )
            self.voices = [v for v in self.voices if v.voice_id != voice_id]
            if self.selected_voice_id == voice_id:
                self.selected_voice_id = None
            logger.info(f"Deleted voice {voice_id}")

    async def fetch_preview(self, url: str) -> bytes:
        if not url:
            raise ValidationError("This voice has no preview")
        async with self._track(FETCH_PREVIEW):
            response = await self._send(FETCH_PREVIEW, "GET", url, "Failed to load preview")
            return response.content

    # ------------------------------------------------------------------
    # Synthesis
    # ------------------------------------------------------------------

    async def synthesize(self, request: SynthesisRequest) -> bytes:
        """
        Synthesize speech, record it, then play it.

        The artifact and history entry are written before playback starts,
        so a DecodeError from playback still leaves the history entry in
        place. Completions of superseded calls are recorded in history but
        neither replace the last artifact nor start playback.
        """
        if not request.text or not request.text.strip():
            raise ValidationError("Please enter some text to convert to speech")
        if not request.voice_id:
            raise ValidationError("Please select a voice")
        voice = self.get_voice(request.voice_id)
        if voice is None:
            raise ValidationError(f"Unknown voice: {request.voice_id}")

        async with self._track(SYNTHESIZE) as sequence:
            response = await self._send(
                SYNTHESIZE,
                "POST",
                "/tts",
                "Failed to generate speech",
                json=request.to_payload(),
            )
            audio = response.content
            if not audio:
                raise RemoteOperationError(
                    SYNTHESIZE, "Server returned no audio", response.status_code
                )
            current = self._is_current(SYNTHESIZE, sequence)

        artifact = AudioArtifact(
            data=audio,
            text=request.text,
            voice_id=voice.voice_id,
            content_type=response.headers.get("content-type", "audio/mpeg"),
        )
        if current:
            self.last_artifact = artifact

        self.store.add_history(
            HistoryEntry(
                id=self.store.new_id(),
                text=request.text,
                voice_id=voice.voice_id,
                voice_name=voice.name,
                timestamp=artifact.created_at,
                duration=AudioService.estimate_duration(request.text),
            )
        )

        if current:
            await self.playback.play(audio)
        else:
            logger.info("Skipping playback of a superseded synthesis")
        return audio

    # ------------------------------------------------------------------
    # Provider history
    # ------------------------------------------------------------------

    async def fetch_history(self) -> List[RemoteHistoryItem]:
        async with self._track(FETCH_HISTORY) as sequence:
            response = await self._send(FETCH_HISTORY, "GET", "/history", "Failed to fetch history")
            data = self._json(FETCH_HISTORY, response)
            try:
                if not isinstance(data, dict):
                    raise ValueError("history response is not an object")
                items = [RemoteHistoryItem.model_validate(i) for i in data.get("history") or []]
            except ValueError as e:
                raise RemoteOperationError(FETCH_HISTORY, f"Malformed history: {e}") from e

            if self._is_current(FETCH_HISTORY, sequence):
                self.remote_history = items
            return items

    async def delete_history_entry(self, history_item_id: str) -> None:
        if not history_item_id:
            raise ValidationError("No history item selected")

        async with self._track(DELETE_HISTORY_ENTRY):
            await self._send(
                DELETE_HISTORY_ENTRY,
                "DELETE",
                f"/history/{quote(history_item_id, safe='')}",
                "Failed to delete history item",
            )
            self.remote_history = [
                i for i in self.remote_history if i.history_item_id != history_item_id
            ]

    async def fetch_history_audio(self, history_item_id: str) -> bytes:
        if not history_item_id:
            raise ValidationError("No history item selected")

        async with self._track(FETCH_HISTORY_AUDIO):
            response = await self._send(
                FETCH_HISTORY_AUDIO,
                "GET",
                f"/history/{quote(history_item_id, safe='')}/audio",
                "Failed to download audio",
            )
            return response.content
