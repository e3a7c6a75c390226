from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from app.schemas.ai import DifficultyLevel


# AI 生成单词
class GenerateWordsCommand(BaseModel):
    learningLanguageId: str = Field(..., min_length=1, max_length=50, description="学习语言ID或代码")
    learningLanguageName: Optional[str] = Field(default=None, max_length=150)
    userLanguage: str = Field(..., min_length=2, max_length=10, description="翻译语言代码")
    userLanguageName: Optional[str] = Field(default=None, max_length=150)
    difficulty: DifficultyLevel = "medium"
    categoryContext: Optional[str] = Field(default=None, max_length=500, description="分类主题")
    temperature: float = Field(default=0.7, ge=0, le=1)
    count: int = Field(default=1, ge=1, le=10)
    excludeTerms: Optional[List[str]] = Field(default=None, max_length=100)

    @field_validator("excludeTerms")
    @classmethod
    def validate_exclude_terms(cls, v):
        if v is None:
            return v
        for term in v:
            if not term or len(term) > 500:
                raise ValueError("排除词长度必须在1-500字符之间")
        return v


class GeneratedWordSuggestion(BaseModel):
    term: str
    translation: str
    examplesMd: str = ""


class AiUsage(BaseModel):
    promptTokens: int = 0
    completionTokens: int = 0


class AiGeneratedWords(BaseModel):
    generated: List[GeneratedWordSuggestion]
    model: str
    usage: AiUsage
