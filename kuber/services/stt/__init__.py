"""
Speech-to-Text Service using AI4Bharat IndicConformer.
Used when the server, not the client device, does recognition.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional
import numpy as np

from kuber.config import get_settings
from kuber.core.exceptions import (
    STTException,
    STTModelNotLoadedException,
    STTNoAudioException,
    STTTimeoutException
)

logger = logging.getLogger(__name__)
settings = get_settings()

# Session languages the model does not know directly
LANGUAGE_ALIASES = {"hinglish": "hi", "en-IN": "en"}


@dataclass
class STTResult:
    """Result from speech-to-text transcription."""
    text: str
    language: str
    confidence: float
    audio_duration_ms: int
    is_final: bool = True
    processing_time_ms: Optional[float] = None


class STTService:
    """
    Speech-to-Text service using AI4Bharat IndicConformer.

    Supports:
    - Indian languages including Hindi, Bengali, Marathi, Tamil, Telugu, Gujarati
    - CTC decoding
    - Script-based language detection
    """

    def __init__(self):
        self._model = None
        self._is_initialized = False
        self._device = "cuda"  # Will fallback to CPU if needed

        self._supported_languages = [
            "as", "bn", "brx", "doi", "gu", "hi", "kn", "kok", "ks",
            "mai", "ml", "mni", "mr", "ne", "or", "pa", "sa", "sat",
            "sd", "ta", "te", "ur", "en"
        ]

        self._decoder = "ctc"

    @property
    def is_available(self) -> bool:
        return self._is_initialized

    async def initialize(self):
        """Initialize STT models. Load in background to not block startup."""
        try:
            logger.info("Initializing STT service...")

            # Run model loading in thread pool to not block
            loop = asyncio.get_event_loop()
            await loop.run_in_executor(None, self._load_models)

            self._is_initialized = True
            logger.info("STT service initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize STT service: {e}")
            # Don't raise - client-side recognition still works
            self._is_initialized = False

    def _load_models(self):
        """Load AI4Bharat IndicConformer model (runs in thread pool)."""
        import torch
        from transformers import AutoModel

        # Check device availability
        if not torch.cuda.is_available():
            logger.warning("CUDA not available, using CPU for STT")
            self._device = "cpu"

        model_id = settings.STT_MODEL_ID
        logger.info(f"Loading STT model: {model_id}")

        # Load AI4Bharat IndicConformer with trust_remote_code
        self._model = AutoModel.from_pretrained(
            model_id,
            trust_remote_code=True,
            token=settings.HF_TOKEN
        )

        logger.info(f"STT model loaded on device: {self._device}")

    async def transcribe(
        self,
        audio_data: bytes,
        language_hint: Optional[str] = None
    ) -> STTResult:
        """
        Transcribe complete audio data.

        Args:
            audio_data: Raw audio bytes (16kHz, 16-bit, mono PCM)
            language_hint: Optional language hint for better accuracy

        Returns:
            STTResult with transcription and metadata
        """
        if not self._is_initialized:
            raise STTModelNotLoadedException()

        start_time = time.time()
        audio_array = self._bytes_to_array(audio_data)

        if len(audio_array) < 1600:  # Less than 100ms
            raise STTNoAudioException()

        try:
            # Run inference in thread pool
            loop = asyncio.get_event_loop()
            result = await asyncio.wait_for(
                loop.run_in_executor(
                    None,
                    self._transcribe_sync,
                    audio_array,
                    LANGUAGE_ALIASES.get(language_hint, language_hint)
                ),
                timeout=settings.STT_TIMEOUT_SECONDS
            )
        except asyncio.TimeoutError:
            raise STTTimeoutException(settings.STT_TIMEOUT_SECONDS)
        except STTException:
            raise
        except Exception as e:
            logger.error(f"Transcription error: {e}")
            raise STTException(f"Transcription failed: {e}")

        result.processing_time_ms = (time.time() - start_time) * 1000
        return result

    def _transcribe_sync(
        self,
        audio_array: np.ndarray,
        language_hint: Optional[str]
    ) -> STTResult:
        """Synchronous transcription using IndicConformer (runs in thread pool)."""
        import torch
        import torchaudio

        # Normalize audio to [-1, 1] range
        audio_array = audio_array / 32768.0

        # Convert to torch tensor with proper shape (1, samples)
        wav = torch.from_numpy(audio_array).float().unsqueeze(0)

        # Resample if needed (model expects 16kHz)
        target_sample_rate = 16000
        current_sr = settings.AUDIO_SAMPLE_RATE
        if current_sr != target_sample_rate:
            resampler = torchaudio.transforms.Resample(orig_freq=current_sr, new_freq=target_sample_rate)
            wav = resampler(wav)

        language = language_hint if language_hint in self._supported_languages else "hi"

        # model(audio, language_code, decoder_type)
        transcription = self._model(wav, language, self._decoder)

        audio_duration_ms = int(len(audio_array) / settings.AUDIO_SAMPLE_RATE * 1000)

        return STTResult(
            text=transcription.strip() if transcription else "",
            language=self._detect_language(transcription, language_hint),
            confidence=0.9,  # IndicConformer doesn't return confidence directly
            audio_duration_ms=audio_duration_ms,
            is_final=True
        )

    def _detect_language(
        self,
        text: str,
        hint: Optional[str] = None
    ) -> str:
        """Simple language detection based on script."""
        if not text:
            return hint or "hi"

        devanagari = sum(1 for c in text if 'ऀ' <= c <= 'ॿ')
        latin = sum(1 for c in text if 'a' <= c.lower() <= 'z')

        total = len(text.replace(" ", ""))
        if total == 0:
            return hint or "hi"

        if devanagari / total > 0.5:
            return hint if hint in ["hi", "mr"] else "hi"
        elif latin / total > 0.5:
            return "en"

        return hint or "hi"

    def _bytes_to_array(self, audio_bytes: bytes) -> np.ndarray:
        """Convert 16-bit PCM bytes to a float array."""
        usable = len(audio_bytes) - (len(audio_bytes) % 2)
        audio_array = np.frombuffer(audio_bytes[:usable], dtype=np.int16)
        return audio_array.astype(np.float32)

    async def cleanup(self):
        """Cleanup resources."""
        if self._model is not None:
            del self._model
            self._model = None

        self._is_initialized = False
        logger.info("STT service cleaned up")
