import math
from typing import Any, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from app.schemas.ai import ChatMessage
from app.services.openrouter.errors import OpenRouterValidationError

MessageLike = Union[ChatMessage, Mapping[str, Any]]

# 每条消息的角色/结构开销（按字符计）
MESSAGE_OVERHEAD_CHARS = 40
# 粗略估算：约4个字符一个token
CHARS_PER_TOKEN = 4


class MessageComposer:
    """聊天消息的组装、校验与截断"""

    @classmethod
    def normalize_messages(cls, messages: Sequence[MessageLike]) -> List[ChatMessage]:
        """
        校验并规范化消息列表，只保留 role / content / name。

        Raises:
            OpenRouterValidationError: 列表为空、缺少字段或内容不是合法UTF-8
        """
        if not messages:
            raise OpenRouterValidationError("消息列表不能为空")

        normalized = []
        for index, msg in enumerate(messages):
            if isinstance(msg, ChatMessage):
                role, content, name = msg.role, msg.content, msg.name
            else:
                role, content, name = msg.get("role"), msg.get("content"), msg.get("name")

            if not role:
                raise OpenRouterValidationError(
                    f"第 {index} 条消息缺少 role",
                    {"index": index},
                )
            if not content:
                raise OpenRouterValidationError(
                    f"第 {index} 条消息缺少 content",
                    {"index": index, "role": role},
                )

            content = cls._validate_utf8(content, index)
            try:
                normalized.append(ChatMessage(role=role, content=content, name=name or None))
            except PydanticValidationError as e:
                raise OpenRouterValidationError(
                    f"第 {index} 条消息格式不合法",
                    {"index": index, "errors": e.errors(include_url=False)},
                ) from e

        return normalized

    @staticmethod
    def _validate_utf8(content: str, index: int) -> str:
        # 严格编解码一次，孤立代理项等损坏内容会在这里失败
        try:
            return content.encode("utf-8").decode("utf-8")
        except (UnicodeError, AttributeError) as e:
            raise OpenRouterValidationError(
                f"第 {index} 条消息包含非法的UTF-8内容",
                {"index": index, "error": str(e)},
            ) from e

    @classmethod
    def compose_with_system(
        cls,
        user_messages: Sequence[MessageLike],
        system_message: Optional[str] = None,
    ) -> List[ChatMessage]:
        """在最前面插入 system 消息（如有），再统一规范化"""
        messages: List[MessageLike] = []
        if system_message:
            messages.append(cls.create_system_message(system_message))
        messages.extend(user_messages)
        return cls.normalize_messages(messages)

    @staticmethod
    def estimate_token_count(messages: Sequence[ChatMessage]) -> int:
        """
        粗略估算token数：内容字符数 + 每条消息固定开销，再除以4向上取整。
        只是近似值，不是真实分词结果。
        """
        total_chars = 0
        for message in messages:
            total_chars += len(message.content) + MESSAGE_OVERHEAD_CHARS
        return math.ceil(total_chars / CHARS_PER_TOKEN)

    @classmethod
    def truncate_to_token_limit(
        cls, messages: Sequence[ChatMessage], max_tokens: int
    ) -> List[ChatMessage]:
        """
        system 消息始终保留；其余消息从最新往前保留，
        直到某条放不下为止（更早的消息先被丢弃）。
        """
        system_messages = [m for m in messages if m.role == "system"]
        other_messages = [m for m in messages if m.role != "system"]

        current_tokens = cls.estimate_token_count(system_messages)
        kept: List[ChatMessage] = []
        for message in reversed(other_messages):
            message_tokens = cls.estimate_token_count([message])
            if current_tokens + message_tokens > max_tokens:
                break
            kept.append(message)
            current_tokens += message_tokens

        kept.reverse()
        return system_messages + kept

    @staticmethod
    def create_user_message(content: str) -> ChatMessage:
        return ChatMessage(role="user", content=content)

    @staticmethod
    def create_system_message(content: str) -> ChatMessage:
        return ChatMessage(role="system", content=content)

    @staticmethod
    def create_assistant_message(content: str) -> ChatMessage:
        return ChatMessage(role="assistant", content=content)
