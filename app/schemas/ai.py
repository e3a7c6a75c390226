import asyncio
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


ChatRole = Literal["system", "user", "assistant", "tool"]
DifficultyLevel = Literal["easy", "medium", "advanced"]


# ---------- OpenRouter 传输层 ----------

class ChatMessage(BaseModel):
    role: ChatRole
    content: str
    name: Optional[str] = None


class OpenRouterConfig(BaseModel):
    """OpenRouter 客户端配置快照，创建后不可修改"""
    model_config = ConfigDict(frozen=True)

    api_key: str
    base_url: str
    default_model: str = "openai/gpt-4o-mini"
    default_params: Dict[str, Any] = Field(default_factory=dict)
    timeout_ms: int = Field(default=30000, gt=0)
    app_url: Optional[str] = None
    app_title: Optional[str] = None


class ChatRequest(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    messages: List[ChatMessage]
    model: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)
    # 原样保留，由 SchemaValidator 做结构校验
    response_format: Optional[Dict[str, Any]] = None
    # 调用方取消令牌，set() 后当前请求立即中止
    cancel_event: Optional[asyncio.Event] = None


class UsageInfo(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ResponseMessage(BaseModel):
    role: str = "assistant"
    content: Optional[str] = None


class ChatChoice(BaseModel):
    index: int = 0
    message: ResponseMessage
    finish_reason: Optional[str] = None


class ChatResponse(BaseModel):
    id: str = ""
    model: str
    choices: List[ChatChoice] = Field(..., min_length=1)
    usage: Optional[UsageInfo] = None
    created: Optional[int] = None


class ChatDelta(BaseModel):
    role: Optional[str] = None
    content: Optional[str] = None


class ChatChunkChoice(BaseModel):
    index: int = 0
    delta: ChatDelta = Field(default_factory=ChatDelta)
    finish_reason: Optional[str] = None


class ChatChunk(BaseModel):
    id: str = ""
    model: str = ""
    choices: List[ChatChunkChoice] = Field(default_factory=list)


# ---------- 对外接口 ----------

class ChatProxyRequest(BaseModel):
    messages: List[ChatMessage] = Field(..., min_length=1)
    model: Optional[str] = None
    temperature: float = Field(default=0.7, ge=0, le=2)
    max_tokens: Optional[int] = Field(default=None, ge=1, le=4096)


class ChatProxyResponse(BaseModel):
    model: str
    reply: str
