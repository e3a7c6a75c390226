from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.vocabulary import Category, Word


@dataclass
class CategoryGenerationContext:
    category_id: str
    name: str
    existing_terms: List[str] = field(default_factory=list)


async def load_generation_context(
    db: AsyncSession, category_id: str
) -> Optional[CategoryGenerationContext]:
    """读取分类名称及已有单词，供AI生成时作为主题和排除列表"""
    result = await db.execute(select(Category).where(Category.id == category_id))
    category = result.scalar_one_or_none()
    if category is None:
        return None

    terms_result = await db.execute(
        select(Word.term).where(Word.category_id == category_id).order_by(Word.created_at)
    )
    return CategoryGenerationContext(
        category_id=category.id,
        name=category.name,
        existing_terms=list(terms_result.scalars().all()),
    )
