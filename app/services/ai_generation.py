import asyncio
import logging
import re
from typing import Any, Iterable, List, Optional

from app.core.config import settings
from app.core.errors import (
    DomainError,
    ExternalServiceError,
    InvalidAIResponseError,
    RateLimitError,
    ValidationError,
)
from app.core.sanitize import sanitize_markdown, strip_html_tags
from app.schemas.ai import ChatRequest, UsageInfo
from app.schemas.word import AiGeneratedWords, AiUsage, GenerateWordsCommand, GeneratedWordSuggestion
from app.services.openrouter import (
    MessageComposer,
    OpenRouterConfigurationError,
    OpenRouterError,
    OpenRouterNetworkError,
    OpenRouterRateLimitError,
    OpenRouterSafetyError,
    OpenRouterSchemaError,
    OpenRouterService,
    OpenRouterValidationError,
    SchemaValidator,
    build_openrouter_config,
)

logger = logging.getLogger(__name__)

MAX_TERM_LENGTH = 500
MAX_EXAMPLES_LENGTH = 2000

SYSTEM_MESSAGE = (
    "You are a helpful language learning assistant that generates vocabulary words "
    "with translations and examples in valid JSON format."
)

DIFFICULTY_DESCRIPTIONS = {
    "easy": "common, everyday vocabulary suitable for beginners (A1-A2 level)",
    "medium": "intermediate vocabulary for regular conversations (B1-B2 level)",
    "advanced": "sophisticated vocabulary for advanced learners (C1-C2 level)",
}

ENGLISH_TERM_RULES = """

CRITICAL RULES FOR ENGLISH TERMS:
- For VERBS: ALWAYS include "to" at the beginning (e.g., "to eat", "to run", "to speak")
- For NOUNS: include appropriate articles "a", "an", or "the" (e.g., "a book", "the house", "an apple")
- For ADJECTIVES: write without articles (e.g., "beautiful", "fast", "happy")"""

# 英语学习时，常见动词补 "to"，其余补冠词
COMMON_ENGLISH_VERBS = frozenset("""
be have do say go get make know think take see come want use find give tell work
call try ask need feel become leave put mean keep let begin seem help show hear
play run move live believe bring happen write sit stand lose pay meet include
continue set learn change lead understand watch follow stop create speak read
spend grow open walk win teach offer remember consider appear buy serve send
build stay fall cut reach raise pass sell decide return explain hope develop
carry break receive agree support hit produce eat cover catch draw choose cause
allow expect drink sleep cook clean drive sing dance swim fly jump
""".split())

_ARTICLE_OR_TO_RE = re.compile(r"^(a|an|the|to)\s+", re.IGNORECASE)


def is_english_language(language: Optional[str]) -> bool:
    if not language:
        return False
    normalized = language.strip().lower()
    return normalized in ("en", "eng") or normalized.startswith(("en-", "english"))


def enhance_english_term(term: str) -> str:
    trimmed = term.strip()
    if not trimmed or _ARTICLE_OR_TO_RE.match(trimmed):
        return trimmed

    first_word = trimmed.split()[0].lower()
    if first_word in COMMON_ENGLISH_VERBS:
        return f"to {trimmed}"
    if trimmed[:1].lower() in "aeiou":
        return f"an {trimmed}"
    return f"a {trimmed}"


class AiGenerationService:
    """AI 单词生成：组装提示词、调用 OpenRouter、校验并清洗返回的建议"""

    def __init__(self, openrouter: Optional[OpenRouterService] = None):
        self._openrouter = openrouter

    def _get_openrouter(self) -> OpenRouterService:
        if self._openrouter is None:
            self._openrouter = OpenRouterService(build_openrouter_config(settings))
        return self._openrouter

    async def generate_words(
        self,
        command: GenerateWordsCommand,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AiGeneratedWords:
        prompt = self.compose_prompt(command)
        learning_english = (
            is_english_language(command.learningLanguageId)
            or is_english_language(command.learningLanguageName)
        )
        logger.debug(
            "Generating %d word(s): learning=%s user=%s english=%s",
            command.count, command.learningLanguageName or command.learningLanguageId,
            command.userLanguage, learning_english,
        )

        try:
            response = await self._get_openrouter().send_chat(
                ChatRequest(
                    messages=[
                        MessageComposer.create_system_message(SYSTEM_MESSAGE),
                        MessageComposer.create_user_message(prompt),
                    ],
                    parameters={"temperature": command.temperature},
                    response_format={"type": "json_object"},
                    cancel_event=cancel_event,
                )
            )
        except OpenRouterError as e:
            raise map_openrouter_error(e) from e
        except DomainError:
            raise
        except Exception as e:
            logger.exception("AI generation failed unexpectedly")
            raise ExternalServiceError("OpenRouter", "生成单词失败，请稍后再试") from e

        content = response.choices[0].message.content
        if not content:
            raise InvalidAIResponseError("AI 返回内容为空")

        try:
            parsed = SchemaValidator.validate_json_response(content)
        except OpenRouterSchemaError as e:
            logger.error("AI response is not valid JSON: %s", content[:500])
            raise InvalidAIResponseError("AI 返回内容不是合法的JSON") from e

        suggestions = self.extract_suggestions(parsed, command.count, command.excludeTerms)
        if learning_english:
            for suggestion in suggestions:
                suggestion.term = enhance_english_term(suggestion.term)

        usage = response.usage or UsageInfo()
        return AiGeneratedWords(
            generated=suggestions,
            model=response.model,
            usage=AiUsage(
                promptTokens=usage.prompt_tokens,
                completionTokens=usage.completion_tokens,
            ),
        )

    @staticmethod
    def compose_prompt(command: GenerateWordsCommand) -> str:
        learning_label = command.learningLanguageName or command.learningLanguageId
        user_label = command.userLanguageName or command.userLanguage
        difficulty_desc = DIFFICULTY_DESCRIPTIONS[command.difficulty]

        prompt = (
            f"Generate {command.count} distinct {difficulty_desc} words or phrases "
            f"in {learning_label}."
        )

        if command.categoryContext:
            prompt += (
                " The words should be related to the following topic or context: "
                f"\"{command.categoryContext}\"."
            )

        if command.excludeTerms:
            excluded = ", ".join(f"\"{term}\"" for term in command.excludeTerms)
            prompt += f" Avoid generating any of the following existing terms: {excluded}."

        prompt += f"""

For each word, provide:
1. "term": the word or phrase in {learning_label}
2. "translation": the translation in {user_label}
3. "examplesMd": up to 5 concise example sentences in {learning_label} showing usage, formatted as markdown list items (each sentence prefixed with "- "). Sentences should be practical and no longer than 120 characters."""

        if is_english_language(command.learningLanguageId) or is_english_language(command.learningLanguageName):
            prompt += ENGLISH_TERM_RULES

        prompt += f"""

Return ONLY a JSON object with this exact structure:
{{
  "words": [
    {{
      "term": "word in {learning_label}",
      "translation": "translation in {user_label}",
      "examplesMd": "- Example sentence 1\\n- Example sentence 2"
    }}
  ]
}}

IMPORTANT: Return ONLY valid JSON, no additional text or explanations."""

        return prompt

    @classmethod
    def extract_suggestions(
        cls,
        parsed: Any,
        count: int,
        exclude_terms: Optional[Iterable[str]] = None,
    ) -> List[GeneratedWordSuggestion]:
        """
        从 {"words": [...]} 中取出至多 count 条有效建议。
        单条不合法只跳过该条；一条都不剩时整体失败。
        """
        if not isinstance(parsed, dict) or not isinstance(parsed.get("words"), list):
            raise InvalidAIResponseError("AI 返回内容缺少 words 数组")

        exclusions = {term.strip().lower() for term in exclude_terms or []}
        suggestions: List[GeneratedWordSuggestion] = []

        for index, word in enumerate(parsed["words"]):
            if len(suggestions) >= count:
                break
            if not isinstance(word, dict):
                logger.warning("Skipping word %d: not an object", index)
                continue

            term = cls._clean_text(word.get("term"))
            translation = cls._clean_text(word.get("translation"))
            if not term or not translation:
                logger.warning("Skipping word %d: missing or invalid term/translation", index)
                continue

            if term.lower() in exclusions:
                logger.warning("Skipping word %d: term already exists in category", index)
                continue

            examples_md = sanitize_markdown(cls._examples_text(word))[:MAX_EXAMPLES_LENGTH]
            suggestions.append(
                GeneratedWordSuggestion(term=term, translation=translation, examplesMd=examples_md)
            )

        if not suggestions:
            raise InvalidAIResponseError("AI 未生成有效的单词建议")

        return suggestions

    @staticmethod
    def _clean_text(value: Any) -> str:
        if not isinstance(value, str):
            return ""
        return strip_html_tags(value)[:MAX_TERM_LENGTH].strip()

    @staticmethod
    def _examples_text(word: dict) -> str:
        examples = word.get("examplesMd")
        if examples is None:
            examples = word.get("examples")
        if isinstance(examples, list):
            return "\n".join(str(item).strip() for item in examples if item)
        if examples:
            return str(examples)
        return ""


def map_openrouter_error(error: OpenRouterError) -> DomainError:
    """把传输层异常转换成对外的业务异常，上游原始报文只记日志"""
    if isinstance(error, OpenRouterConfigurationError):
        return ValidationError("AI 生成功能未配置，请联系管理员")
    if isinstance(error, OpenRouterRateLimitError):
        return RateLimitError("AI 服务请求过于频繁，请稍后再试")
    if isinstance(error, OpenRouterNetworkError):
        if error.timed_out:
            return ExternalServiceError("OpenRouter", "AI 服务请求超时，请稍后再试")
        return ExternalServiceError("OpenRouter", "AI 服务暂时不可用，请稍后再试")
    if isinstance(error, (OpenRouterSafetyError, OpenRouterSchemaError)):
        return InvalidAIResponseError("AI 返回内容无效")
    if isinstance(error, OpenRouterValidationError):
        return error

    status = error.context.get("status")
    if status is not None:
        return ExternalServiceError(
            "OpenRouter",
            f"AI 服务返回错误（HTTP {status}）",
            details={"status": status},
        )
    return InvalidAIResponseError("AI 返回内容无效")


def get_ai_generation_service() -> AiGenerationService:
    return AiGenerationService()
