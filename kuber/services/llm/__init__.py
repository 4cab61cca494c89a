"""
LLM Services.
Cloud chat completion through the Groq API and an optional on-device
model loaded with transformers.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional, List, Dict

from kuber.config import get_settings, SYSTEM_PROMPT
from kuber.core.exceptions import (
    LLMAPIException,
    LLMNotConfiguredException,
    LLMTimeoutException,
    LLMRateLimitException,
    LocalModelUnavailableException
)

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class LLMResponse:
    """Response from LLM completion."""
    content: str
    finish_reason: Optional[str] = None
    usage: Optional[Dict[str, int]] = None
    processing_time_ms: Optional[float] = None
    source: str = "cloud"


def with_system_prompt(messages: List[Dict[str, str]]) -> List[Dict[str, str]]:
    """Prepend the assistant system prompt unless one is already present."""
    if messages and messages[0].get("role") == "system":
        return list(messages)
    return [{"role": "system", "content": SYSTEM_PROMPT}] + [
        {"role": m["role"], "content": m["content"]} for m in messages
    ]


class CloudLLMService:
    """
    Chat completion through Groq.

    Used as the permanent fallback when the on-device model cannot be
    loaded, and directly by the /chat endpoint.
    """

    def __init__(self, client=None, model: Optional[str] = None):
        self._client = client
        self._is_initialized = client is not None
        self._model = model or settings.LLM_MODEL_ID

    @property
    def is_available(self) -> bool:
        return self._is_initialized

    async def initialize(self):
        """Initialize Groq client."""
        if self._is_initialized:
            return

        if not settings.GROQ_API_KEY.strip():
            logger.warning("GROQ_API_KEY not set, cloud model unavailable")
            return

        try:
            logger.info("Initializing cloud LLM service...")

            from groq import AsyncGroq

            self._client = AsyncGroq(api_key=settings.GROQ_API_KEY)
            self._is_initialized = True
            logger.info(f"Cloud LLM service initialized with model: {self._model}")

        except Exception as e:
            logger.error(f"Failed to initialize cloud LLM service: {e}")
            self._is_initialized = False

    async def complete(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ) -> LLMResponse:
        """
        Generate a complete response.

        Args:
            messages: Conversation messages, system prompt optional
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate

        Returns:
            LLMResponse with the assistant text
        """
        if not self._is_initialized:
            raise LLMNotConfiguredException()

        start_time = time.time()

        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self._model,
                    messages=with_system_prompt(messages),
                    temperature=settings.LLM_TEMPERATURE if temperature is None else temperature,
                    max_tokens=max_tokens or settings.LLM_MAX_TOKENS,
                    top_p=1,
                    stream=False
                ),
                timeout=settings.LLM_TIMEOUT_SECONDS
            )
        except asyncio.TimeoutError:
            raise LLMTimeoutException(settings.LLM_TIMEOUT_SECONDS)
        except Exception as e:
            if "rate_limit" in str(e).lower():
                raise LLMRateLimitException()
            raise LLMAPIException(str(e))

        choice = response.choices[0]
        usage = None
        if getattr(response, "usage", None) is not None:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens
            }

        return LLMResponse(
            content=choice.message.content or "No response generated.",
            finish_reason=choice.finish_reason,
            usage=usage,
            processing_time_ms=(time.time() - start_time) * 1000,
            source="cloud"
        )

    async def cleanup(self):
        """Cleanup resources."""
        self._client = None
        self._is_initialized = False
        logger.info("Cloud LLM service cleaned up")


class LocalLLMEngine:
    """
    On-device chat model.

    Loading needs torch, transformers and a CUDA device; any failure is
    reported as LocalModelUnavailableException so the caller can switch
    to the cloud model.
    """

    def __init__(self, model_id: Optional[str] = None):
        self._model_id = model_id or settings.LOCAL_LLM_MODEL_ID
        self._model = None
        self._tokenizer = None
        self._device = None

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    async def load(self):
        """Load the model in a worker thread."""
        if self.is_loaded:
            return
        if not settings.ENABLE_LOCAL_LLM:
            raise LocalModelUnavailableException("disabled by configuration")

        logger.info(f"Loading local model: {self._model_id}")
        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, self._load_sync)
        logger.info(f"Local model loaded on {self._device}")

    def _load_sync(self):
        try:
            import torch
            from transformers import AutoModelForCausalLM, AutoTokenizer
        except ImportError as e:
            raise LocalModelUnavailableException(f"missing dependency: {e.name}")

        if not torch.cuda.is_available():
            raise LocalModelUnavailableException("no GPU available")

        try:
            self._device = "cuda"
            self._tokenizer = AutoTokenizer.from_pretrained(
                self._model_id,
                token=settings.HF_TOKEN
            )
            self._model = AutoModelForCausalLM.from_pretrained(
                self._model_id,
                token=settings.HF_TOKEN,
                torch_dtype=torch.float16
            ).to(self._device)
            self._model.eval()
        except Exception as e:
            self.unload()
            raise LocalModelUnavailableException(str(e))

    async def complete(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ) -> LLMResponse:
        if not self.is_loaded:
            raise LocalModelUnavailableException("model not loaded")

        start_time = time.time()
        loop = asyncio.get_event_loop()
        content = await loop.run_in_executor(
            None,
            self._generate_sync,
            with_system_prompt(messages),
            settings.LLM_TEMPERATURE if temperature is None else temperature,
            max_tokens or settings.LLM_MAX_TOKENS
        )

        return LLMResponse(
            content=content,
            finish_reason="stop",
            processing_time_ms=(time.time() - start_time) * 1000,
            source="local"
        )

    def _generate_sync(
        self,
        messages: List[Dict[str, str]],
        temperature: float,
        max_tokens: int
    ) -> str:
        import torch

        input_ids = self._tokenizer.apply_chat_template(
            messages,
            add_generation_prompt=True,
            return_tensors="pt"
        ).to(self._device)

        with torch.no_grad():
            output = self._model.generate(
                input_ids,
                max_new_tokens=max_tokens,
                do_sample=temperature > 0,
                temperature=temperature if temperature > 0 else None
            )

        generated = output[0][input_ids.shape[-1]:]
        return self._tokenizer.decode(generated, skip_special_tokens=True).strip()

    def unload(self):
        """Drop the model handle."""
        self._model = None
        self._tokenizer = None
        self._device = None

