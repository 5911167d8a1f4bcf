"""Audio helpers: WAV encoding, decoding, sample checks and export."""

import io
import logging
import math
import re
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple

import librosa
import numpy as np
import soundfile as sf

from speechstudio.config import settings
from speechstudio.errors import DecodeError, ValidationError
from speechstudio.models import AudioArtifact, SampleFile, TextStats

logger = logging.getLogger(__name__)

WORDS_PER_MINUTE = 150


def _ensure_dir(p: Path) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)


def sanitize_filename(name: str) -> str:
    # Keep alnum, dash, underscore, dot; collapse spaces; trim
    name = re.sub(r"\s+", "_", name.strip())
    return re.sub(r"[^A-Za-z0-9_.\-]+", "", name) or f"audio_{uuid.uuid4().hex[:8]}"


class AudioService:
    """Service for audio processing operations."""

    @staticmethod
    def encode_wav(samples: np.ndarray, sample_rate: int) -> bytes:
        """Encode float samples in [-1, 1] as a 16-bit WAV file."""
        if samples.ndim > 1 and samples.shape[-1] == 1:
            samples = samples.squeeze(axis=-1)
        samples = np.clip(samples, -1.0, 1.0).astype(np.float32)

        buffer = io.BytesIO()
        sf.write(buffer, samples, sample_rate, format="WAV", subtype="PCM_16")
        return buffer.getvalue()

    @staticmethod
    def decode_audio(data: bytes) -> Tuple[np.ndarray, int]:
        """
        Decode encoded audio into float32 frames shaped (frames, channels).

        Uses soundfile first and librosa as a fallback for containers
        libsndfile cannot read.
        """
        if not data:
            raise DecodeError("No audio data to decode")

        try:
            frames, sr = sf.read(io.BytesIO(data), dtype="float32", always_2d=True)
            return frames, sr
        except Exception as e1:
            logger.warning(f"Soundfile decode failed: {e1}, trying librosa")

        try:
            audio, sr = librosa.load(io.BytesIO(data), sr=None, mono=False)
        except Exception as e2:
            logger.error(f"All decode methods failed: {e2}")
            raise DecodeError(f"Unable to decode audio: {e2}") from e2

        audio = audio.astype(np.float32)
        if audio.ndim == 1:
            frames = audio.reshape(-1, 1)
        else:
            frames = audio.T
        return frames, int(sr)

    @staticmethod
    def text_stats(text: str) -> TextStats:
        """Character count, word count and spoken duration estimate."""
        words = [w for w in text.strip().split() if w]
        return TextStats(
            characters=len(text),
            words=len(words),
            estimated_duration=math.ceil(len(words) / WORDS_PER_MINUTE * 60),
        )

    @staticmethod
    def estimate_duration(text: str) -> int:
        return AudioService.text_stats(text).estimated_duration

    @staticmethod
    def validate_sample(sample: SampleFile, max_size_mb: Optional[int] = None) -> None:
        """Reject samples that are not audio (or MP4 video) or are too large."""
        if max_size_mb is None:
            max_size_mb = settings.MAX_SAMPLE_SIZE_MB

        content_type = (sample.content_type or "").lower()
        if "audio/" not in content_type and "video/mp4" not in content_type:
            raise ValidationError("Please upload a valid audio or MP4 file")

        if sample.size == 0:
            raise ValidationError(f"Sample {sample.filename} is empty")

        if sample.size > max_size_mb * 1024 * 1024:
            raise ValidationError(f"File size exceeds {max_size_mb}MB limit")

    @staticmethod
    def load_sample(path: Path, content_type: Optional[str] = None) -> SampleFile:
        """Read a sample file from disk."""
        path = Path(path)
        if content_type is None:
            suffix = path.suffix.lower().lstrip(".")
            content_type = "video/mp4" if suffix == "mp4" else f"audio/{suffix or 'mpeg'}"
        return SampleFile(filename=path.name, content_type=content_type, data=path.read_bytes())

    @staticmethod
    def save_bytes(data: bytes, filename: str, output_dir: Optional[Path] = None) -> Path:
        """Write raw audio bytes to output_dir/filename."""
        if output_dir is None:
            output_dir = settings.EXPORTS_DIR

        filepath = Path(output_dir) / sanitize_filename(filename)
        _ensure_dir(filepath)

        try:
            filepath.write_bytes(data)
            logger.info(f"Audio saved to {filepath}")
            return filepath
        except OSError as e:
            logger.error(f"Failed to save audio: {e}")
            raise

    @staticmethod
    def export_artifact(
        artifact: AudioArtifact,
        output_dir: Optional[Path] = None,
        filename: Optional[str] = None,
    ) -> Path:
        """Export a generated artifact, named tts-YYYY-MM-DD.mp3 by default."""
        if filename is None:
            filename = f"tts-{datetime.now().strftime('%Y-%m-%d')}.mp3"
        return AudioService.save_bytes(artifact.data, filename, output_dir)

    @staticmethod
    def history_audio_filename(history_item_id: str) -> str:
        return f"tts-{history_item_id}.mp3"
