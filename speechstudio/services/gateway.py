"""
ElevenLabs gateway client used by the relay.

Thin async wrapper over the provider's REST API. Every non-success response
or transport failure becomes a GatewayError carrying the provider's status
code (502 when the provider could not be reached) and a readable message.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote

import httpx

from speechstudio.config import settings
from speechstudio.errors import GatewayError

logger = logging.getLogger(__name__)

# (filename, content, content_type)
UploadFile = Tuple[str, bytes, str]


def _error_message(response: httpx.Response, default: str) -> str:
    """Pull the provider's message out of an error body, if there is one."""
    try:
        body = response.json()
    except ValueError:
        return default

    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, dict) and detail.get("message"):
        return str(detail["message"])
    if isinstance(detail, str) and detail:
        return detail
    return default


class ElevenLabsGateway:
    """Async client for the ElevenLabs API."""

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.ELEVENLABS_BASE_URL).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"xi-api-key": api_key},
            timeout=timeout if timeout is not None else settings.REQUEST_TIMEOUT,
            transport=transport,
        )
        logger.info(f"ElevenLabs gateway ready ({self.base_url})")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self, method: str, path: str, default_error: str, **kwargs
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} could not reach provider: {e}")
            raise GatewayError(502, default_error) from e

        if response.is_error:
            message = _error_message(response, default_error)
            logger.error(f"{method} {path} -> {response.status_code}: {message}")
            raise GatewayError(response.status_code, message)
        return response

    @staticmethod
    def _json(response: httpx.Response, default_error: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Provider returned a non-JSON body: {e}")
            raise GatewayError(502, default_error) from e

    async def list_voices(self) -> List[Dict[str, Any]]:
        error = "Failed to fetch voices"
        response = await self._request("GET", "/voices", error)
        data = self._json(response, error)
        if not isinstance(data, dict) or not isinstance(data.get("voices"), list):
            raise GatewayError(502, error)
        return data["voices"]

    async def add_voice(self, name: str, files: Sequence[UploadFile]) -> Dict[str, Any]:
        error = "Failed to clone voice"
        response = await self._request(
            "POST",
            "/voices/add",
            error,
            data={"name": name},
            files=[("files", f) for f in files],
            headers={"Accept": "application/json"},
        )
        data = self._json(response, error)
        if not isinstance(data, dict):
            raise GatewayError(502, error)
        return data

    async def rename_voice(self, voice_id: str, name: str) -> None:
        await self._request(
            "POST",
            f"/voices/{quote(voice_id, safe='')}/edit",
            "Failed to rename voice",
            data={"name": name},
        )

    async def delete_voice(self, voice_id: str) -> None:
        await self._request(
            "DELETE", f"/voices/{quote(voice_id, safe='')}", "Failed to delete voice"
        )

    async def text_to_speech(
        self,
        voice_id: str,
        text: str,
        model_id: str,
        voice_settings: Dict[str, Any],
    ) -> bytes:
        response = await self._request(
            "POST",
            f"/text-to-speech/{quote(voice_id, safe='')}",
            "Failed to convert text to speech",
            json={"text": text, "model_id": model_id, "voice_settings": voice_settings},
            headers={"Accept": "audio/mpeg"},
        )
        return response.content

    async def get_history(self) -> Dict[str, Any]:
        error = "Failed to fetch history"
        response = await self._request("GET", "/history", error)
        data = self._json(response, error)
        if not isinstance(data, dict):
            raise GatewayError(502, error)
        return data

    async def get_history_audio(self, history_item_id: str) -> bytes:
        response = await self._request(
            "GET",
            f"/history/{quote(history_item_id, safe='')}/audio",
            "Failed to fetch audio",
        )
        return response.content

    async def delete_history_item(self, history_item_id: str) -> None:
        await self._request(
            "DELETE",
            f"/history/{quote(history_item_id, safe='')}",
            "Failed to delete history item",
        )
