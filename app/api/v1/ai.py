import json
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from app.core.config import settings
from app.core.errors import ValidationError
from app.schemas.ai import ChatProxyRequest, ChatProxyResponse, ChatRequest
from app.schemas.response import ApiResponse
from app.services.ai_generation import map_openrouter_error
from app.services.openrouter import OpenRouterError, OpenRouterService, build_openrouter_config

router = APIRouter()
logger = logging.getLogger(__name__)


def get_openrouter_service() -> OpenRouterService:
    if not settings.OPENROUTER_API_KEY:
        raise ValidationError("OPENROUTER_API_KEY 未配置，请在环境变量中设置")
    return OpenRouterService(build_openrouter_config(settings))


def _to_chat_request(payload: ChatProxyRequest) -> ChatRequest:
    parameters = {"temperature": payload.temperature}
    if payload.max_tokens is not None:
        parameters["max_tokens"] = payload.max_tokens
    return ChatRequest(messages=payload.messages, model=payload.model, parameters=parameters)


@router.post("/chat", response_model=ApiResponse)
async def ai_chat(
    payload: ChatProxyRequest,
    openrouter: OpenRouterService = Depends(get_openrouter_service),
):
    try:
        response = await openrouter.send_chat(_to_chat_request(payload))
    except OpenRouterError as e:
        raise map_openrouter_error(e) from e

    reply = response.choices[0].message.content or ""
    output = ChatProxyResponse(model=response.model, reply=reply)
    return ApiResponse(code=200, data=output.model_dump())


@router.post("/chat/stream")
async def ai_chat_stream(
    payload: ChatProxyRequest,
    openrouter: OpenRouterService = Depends(get_openrouter_service),
):
    """
    流式对话，按行输出 JSON（application/x-ndjson）。
    上游出错时输出一行 {"error": {...}} 后结束。
    """
    request = _to_chat_request(payload)

    async def event_generator():
        try:
            async for chunk in openrouter.stream_chat(request):
                yield (chunk.model_dump_json() + "\n").encode("utf-8")
        except OpenRouterError as e:
            logger.warning("Chat stream aborted: %s", e.message)
            error = map_openrouter_error(e)
            yield (json.dumps({"error": error.to_dict()}, ensure_ascii=False) + "\n").encode("utf-8")

    return StreamingResponse(event_generator(), media_type="application/x-ndjson")
