from fastapi import APIRouter

from app.core.config import settings
from app.schemas.response import ApiResponse

router = APIRouter()


@router.get("/info", response_model=ApiResponse)
async def get_system_info():
    return ApiResponse(
        code=200,
        data={
            "service": "单词学习 API",
            "version": "1.0.0",
            "aiConfigured": bool(settings.OPENROUTER_API_KEY),
            "aiBaseUrl": settings.OPENROUTER_BASE_URL,
            "aiModel": settings.OPENROUTER_MODEL,
            "aiTimeoutMs": settings.OPENROUTER_TIMEOUT_MS,
        },
    )
