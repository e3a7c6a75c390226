from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.errors import NotFoundError
from app.schemas.response import ApiResponse
from app.schemas.word import GenerateWordsCommand
from app.services.ai_generation import AiGenerationService, get_ai_generation_service
from app.services.vocabulary import load_generation_context

router = APIRouter()

MAX_EXCLUDED_TERMS = 100


@router.post("/categories/{category_id}/words/ai-generate", response_model=ApiResponse)
async def ai_generate_words(
    category_id: str,
    command: GenerateWordsCommand,
    db: AsyncSession = Depends(get_db),
    service: AiGenerationService = Depends(get_ai_generation_service),
):
    """AI 生成单词建议（只返回建议，不落库）"""
    context = await load_generation_context(db, category_id)
    if context is None:
        raise NotFoundError("分类")

    # 请求自带的排除词优先，再补上分类里已有的单词
    exclude_terms = list(command.excludeTerms or [])
    seen = {term.strip().lower() for term in exclude_terms}
    for term in context.existing_terms:
        key = term.strip().lower()
        if key and key not in seen:
            exclude_terms.append(term)
            seen.add(key)

    command = command.model_copy(update={
        "categoryContext": command.categoryContext or context.name,
        "excludeTerms": exclude_terms[:MAX_EXCLUDED_TERMS] or None,
    })

    result = await service.generate_words(command)
    return ApiResponse(
        code=200,
        message="生成成功",
        data=result.model_dump(),
    )
