"""
Chat Completion Endpoint.
Proxies a conversation to the cloud model with the Kuber system prompt.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from kuber.core.exceptions import LLMException, LLMNotConfiguredException

logger = logging.getLogger(__name__)

router = APIRouter()


class ChatTurn(BaseModel):
    role: str
    content: str


class ChatRequest(BaseModel):
    messages: List[ChatTurn]
    language: Optional[str] = None


@router.post("/chat")
async def chat(request: Request, body: ChatRequest):
    """
    Complete a conversation.

    Returns {"response": text}, or {"error": message} with 503 when no
    API key is configured and 500 when the model call fails.
    """
    llm = request.app.state.cloud_llm
    messages = [{"role": m.role, "content": m.content} for m in body.messages]

    try:
        result = await llm.complete(messages)
    except LLMNotConfiguredException:
        return JSONResponse(
            status_code=503,
            content={"error": "Groq API key not configured. Please add GROQ_API_KEY to .env."}
        )
    except LLMException as e:
        logger.error(f"Chat completion failed: {e.message}")
        return JSONResponse(status_code=500, content={"error": e.message})

    return {"response": result.content}
