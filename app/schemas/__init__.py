from app.schemas.response import ApiResponse
from app.schemas.ai import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ChatChoice,
    ChatChunk,
    UsageInfo,
    OpenRouterConfig,
    ChatProxyRequest,
    ChatProxyResponse,
)
from app.schemas.word import (
    GenerateWordsCommand,
    GeneratedWordSuggestion,
    AiUsage,
    AiGeneratedWords,
)
