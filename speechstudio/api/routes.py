"""Relay routes: forward studio requests to the speech provider."""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse, Response

from speechstudio.config import settings
from speechstudio.errors import ConfigurationError
from speechstudio.models import CloneVoiceResponse, RenameVoiceRequest, TTSRequest
from speechstudio.services.audio_service import AudioService
from speechstudio.services.gateway import ElevenLabsGateway

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api")


def get_gateway(request: Request) -> ElevenLabsGateway:
    """Shared gateway for the app, created on first use."""
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        if not settings.ELEVENLABS_API_KEY:
            raise ConfigurationError("ELEVENLABS_API_KEY is not set")
        gateway = ElevenLabsGateway(settings.ELEVENLABS_API_KEY)
        request.app.state.gateway = gateway
    return gateway


@router.get("/voices")
async def get_voices(gateway: ElevenLabsGateway = Depends(get_gateway)):
    """List provider voices."""
    return await gateway.list_voices()


@router.post("/clone-voice")
async def clone_voice(
    files: Optional[List[UploadFile]] = File(None),
    name: Optional[str] = Form(None),
    gateway: ElevenLabsGateway = Depends(get_gateway),
):
    if not files:
        return JSONResponse(
            status_code=400,
            content={"error": "You must upload at least one audio sample."},
        )
    if not name or not name.strip():
        return JSONResponse(
            status_code=400,
            content={"error": "You must provide a name for the voice."},
        )

    logger.info(f"Cloning voice: {name} from {len(files)} sample(s)")
    uploads = []
    for upload in files:
        content = await upload.read()
        uploads.append(
            (upload.filename or "sample", content, upload.content_type or "audio/mpeg")
        )

    data = await gateway.add_voice(name, uploads)
    if not data.get("voice_id"):
        logger.error(f"Clone response without voice_id: {data}")
        return JSONResponse(
            status_code=500,
            content={"error": "Invalid response from ElevenLabs API"},
        )

    return CloneVoiceResponse(voice_id=data["voice_id"])


@router.post("/clone-voice/{voice_id}/name")
async def rename_voice(
    voice_id: str,
    body: RenameVoiceRequest,
    gateway: ElevenLabsGateway = Depends(get_gateway),
):
    """Rename a cloned voice."""
    await gateway.rename_voice(voice_id, body.name)
    return {"success": True}


@router.delete("/clone-voice/{voice_id}")
async def delete_voice(voice_id: str, gateway: ElevenLabsGateway = Depends(get_gateway)):
    """Delete a cloned voice."""
    await gateway.delete_voice(voice_id)
    return {"success": True}


@router.post("/tts")
async def text_to_speech(
    request: TTSRequest, gateway: ElevenLabsGateway = Depends(get_gateway)
):
    logger.info(f"Synthesizing {len(request.text)} chars with voice {request.voice_id}")
    audio = await gateway.text_to_speech(
        voice_id=request.voice_id,
        text=request.text,
        model_id=request.model_id or settings.DEFAULT_MODEL_ID,
        voice_settings=request.voice_settings().model_dump(),
    )
    return Response(content=audio, media_type="audio/mpeg")


@router.get("/history")
async def get_history(gateway: ElevenLabsGateway = Depends(get_gateway)):
    """Provider-side generation history."""
    data = await gateway.get_history()
    return {"history": data.get("history") or []}


@router.get("/history/{history_item_id}/audio")
async def get_history_audio(
    history_item_id: str, gateway: ElevenLabsGateway = Depends(get_gateway)
):
    audio = await gateway.get_history_audio(history_item_id)
    filename = AudioService.history_audio_filename(history_item_id)
    return Response(
        content=audio,
        media_type="audio/mpeg",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.delete("/history/{history_item_id}")
async def delete_history_item(
    history_item_id: str, gateway: ElevenLabsGateway = Depends(get_gateway)
):
    await gateway.delete_history_item(history_item_id)
    return {"success": True}


@router.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "credential_configured": bool(settings.ELEVENLABS_API_KEY),
    }
