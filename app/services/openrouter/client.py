"""
OpenRouter 聊天补全客户端。

负责请求组装、HTTP传输（超时 + 取消 + 指数退避重试）、响应解析与错误分类，
以及可选的调用指标上报。
"""
import asyncio
import json
import logging
import math
import random
import time
from typing import Any, AsyncIterator, Dict, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from app.core.config import Settings
from app.schemas.ai import ChatChunk, ChatRequest, ChatResponse, OpenRouterConfig, UsageInfo
from app.services.openrouter.errors import (
    OpenRouterAuthError,
    OpenRouterConfigurationError,
    OpenRouterNetworkError,
    OpenRouterRateLimitError,
    OpenRouterSafetyError,
    OpenRouterSchemaError,
    OpenRouterServerError,
    OpenRouterStreamError,
    OpenRouterUnexpectedResponseError,
    OpenRouterValidationError,
)
from app.services.openrouter.message_composer import MessageComposer
from app.services.openrouter.schema_validator import SchemaValidator

logger = logging.getLogger(__name__)

_SSE_DONE = object()


def build_openrouter_config(settings: Settings) -> OpenRouterConfig:
    """从应用配置生成 OpenRouter 配置快照"""
    return OpenRouterConfig(
        api_key=settings.OPENROUTER_API_KEY,
        base_url=settings.OPENROUTER_BASE_URL,
        default_model=settings.OPENROUTER_MODEL,
        default_params=settings.OPENROUTER_DEFAULT_PARAMS,
        timeout_ms=settings.OPENROUTER_TIMEOUT_MS,
        app_url=settings.APP_URL or None,
        app_title=settings.APP_TITLE or None,
    )


class OpenRouterService:
    """
    OpenRouter API 客户端。

    配置在构造时复制并冻结，之后的每次调用都使用同一份快照。
    metrics_client 只需实现 record_metric(event, meta)，上报失败不会影响调用结果。
    """

    DEFAULT_TIMEOUT_MS = 30000
    MAX_RETRIES = 3
    INITIAL_RETRY_DELAY_MS = 1000
    MAX_RETRY_DELAY_MS = 10000
    MAX_JITTER_MS = 1000
    SUPPORTED_PARAMETERS = frozenset({
        "temperature",
        "top_p",
        "max_tokens",
        "frequency_penalty",
        "presence_penalty",
        "stop",
    })

    def __init__(
        self,
        config: OpenRouterConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        metrics_client: Optional[Any] = None,
    ):
        if not config.api_key:
            raise OpenRouterConfigurationError(
                "缺少 OpenRouter API key",
                {"configKeys": list(config.model_fields_set)},
            )
        if not config.base_url:
            raise OpenRouterConfigurationError(
                "缺少 OpenRouter base URL",
                {"configKeys": list(config.model_fields_set)},
            )

        self._config = config.model_copy(deep=True)
        self._transport = transport
        self._metrics_client = metrics_client

        logger.info(
            "OpenRouterService initialized: base_url=%s default_model=%s timeout_ms=%d",
            self._config.base_url,
            self._config.default_model,
            self._config.timeout_ms,
        )

    def get_default_config(self) -> OpenRouterConfig:
        """只读配置快照，用于诊断"""
        return self._config

    async def send_chat(self, request: ChatRequest) -> ChatResponse:
        """
        发送一次聊天补全请求。

        Raises:
            OpenRouterValidationError: 请求不合法
            OpenRouterNetworkError: 超时、连接失败或被取消
            OpenRouterAuthError: 401/403
            OpenRouterRateLimitError: 429 且重试耗尽
            OpenRouterServerError: >=500 且重试耗尽
            OpenRouterSafetyError: 内容被过滤
            OpenRouterSchemaError: 响应结构不符合预期
            OpenRouterUnexpectedResponseError: 其他异常响应
        """
        start = time.monotonic()
        try:
            payload = self._build_payload(request)
            async with self._open_client() as client:
                response = await self._execute_with_retry(client, payload, request.cancel_event)
                chat_response = self._parse_response(response)
        except Exception as e:
            self._emit_metric("chat_completion_failure", {
                "error": type(e).__name__,
                "latency_ms": self._elapsed_ms(start),
            })
            raise

        usage = chat_response.usage or UsageInfo()
        self._emit_metric("chat_completion_success", {
            "model": chat_response.model,
            "latency_ms": self._elapsed_ms(start),
            "prompt_tokens": usage.prompt_tokens,
            "completion_tokens": usage.completion_tokens,
        })
        return chat_response

    async def stream_chat(self, request: ChatRequest) -> AsyncIterator[ChatChunk]:
        """
        流式聊天补全，逐个产出解析后的 ChatChunk。

        请求在第一次迭代时才真正发出，分发与重试规则和 send_chat 相同。
        """
        payload = self._build_payload(request)
        payload["stream"] = True

        async with self._open_client() as client:
            response = await self._execute_with_retry(
                client, payload, request.cancel_event, stream=True
            )
            try:
                async for chunk in self._iter_sse_chunks(response):
                    yield chunk
            finally:
                await response.aclose()

    def _open_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=self._config.timeout_ms / 1000,
        )

    def _build_headers(self) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._config.api_key}",
            "Content-Type": "application/json",
        }
        if self._config.app_url:
            headers["HTTP-Referer"] = self._config.app_url
        if self._config.app_title:
            headers["X-Title"] = self._config.app_title
        return headers

    def _build_payload(self, request: ChatRequest) -> Dict[str, Any]:
        messages = MessageComposer.normalize_messages(request.messages)
        model = request.model or self._config.default_model

        # 请求参数覆盖默认参数
        parameters = {**self._config.default_params, **request.parameters}
        for key in parameters:
            if key not in self.SUPPORTED_PARAMETERS:
                raise OpenRouterValidationError(
                    f"不支持的参数: {key}",
                    {"parameter": key, "supportedParameters": sorted(self.SUPPORTED_PARAMETERS)},
                )

        if request.response_format is not None:
            SchemaValidator.validate_response_format(request.response_format)

        payload: Dict[str, Any] = {
            "model": model,
            "messages": [m.model_dump(exclude_none=True) for m in messages],
        }
        payload.update({k: v for k, v in parameters.items() if v is not None})
        if request.response_format is not None:
            payload["response_format"] = dict(request.response_format)
        return payload

    async def _execute_with_retry(
        self,
        client: httpx.AsyncClient,
        payload: Dict[str, Any],
        cancel_event: Optional[asyncio.Event],
        stream: bool = False,
    ) -> httpx.Response:
        last_error: Optional[Exception] = None

        for attempt in range(self.MAX_RETRIES + 1):
            try:
                response = await self._send_once(client, payload, cancel_event, stream)
            except OpenRouterNetworkError as e:
                last_error = e
                if e.retryable and attempt < self.MAX_RETRIES:
                    delay_ms = self._calculate_retry_delay(attempt)
                    logger.warning(
                        "Network error, retrying (attempt %d, delay %dms): %s",
                        attempt + 1, delay_ms, e.message,
                    )
                    await self._sleep(delay_ms)
                    continue
                raise

            status = response.status_code
            if (status == 429 or status >= 500) and attempt < self.MAX_RETRIES:
                retry_after = self._parse_retry_after(response.headers.get("retry-after"))
                if retry_after is not None:
                    delay_ms = int(retry_after * 1000)
                else:
                    delay_ms = self._calculate_retry_delay(attempt)
                logger.warning(
                    "OpenRouter returned %d, retrying (attempt %d, delay %dms)",
                    status, attempt + 1, delay_ms,
                )
                await response.aclose()
                await self._sleep(delay_ms)
                continue

            if not response.is_success:
                try:
                    await self._raise_http_error(response)
                finally:
                    await response.aclose()

            return response

        raise last_error or OpenRouterNetworkError("超过最大重试次数")

    async def _send_once(
        self,
        client: httpx.AsyncClient,
        payload: Dict[str, Any],
        cancel_event: Optional[asyncio.Event],
        stream: bool,
    ) -> httpx.Response:
        """单次请求：HTTP调用与超时、调用方取消三者竞争，先到先得"""
        if cancel_event is not None and cancel_event.is_set():
            raise OpenRouterNetworkError("请求已被取消", retryable=False, context={"cancelled": True})

        url = f"{self._config.base_url.rstrip('/')}/chat/completions"
        http_request = client.build_request("POST", url, headers=self._build_headers(), json=payload)
        logger.info(
            "Sending request to OpenRouter: model=%s messages=%d stream=%s",
            payload["model"], len(payload["messages"]), stream,
        )

        send_task = asyncio.ensure_future(client.send(http_request, stream=stream))
        waiters = {send_task}
        if cancel_event is not None:
            waiters.add(asyncio.ensure_future(cancel_event.wait()))

        timeout_ms = self._config.timeout_ms
        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout_ms / 1000, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in waiters:
                if not task.done():
                    task.cancel()

        if send_task not in done:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Request cancelled by caller")
                raise OpenRouterNetworkError("请求已被取消", retryable=False, context={"cancelled": True})
            logger.error("Request timed out after %dms", timeout_ms)
            raise OpenRouterNetworkError("请求超时，请稍后重试", retryable=True, context={"timeout_ms": timeout_ms})

        try:
            return send_task.result()
        except httpx.TimeoutException as e:
            logger.error("Request timed out: %s", e)
            raise OpenRouterNetworkError(
                "请求超时，请稍后重试", retryable=True, context={"timeout_ms": timeout_ms, "error": str(e)}
            ) from e
        except httpx.HTTPError as e:
            logger.error("Network error: %s", e)
            raise OpenRouterNetworkError(
                "网络请求失败，请检查连接", retryable=True, context={"error": str(e)}
            ) from e

    def _calculate_retry_delay(self, attempt: int) -> int:
        """指数退避（封顶）再叠加随机抖动，单位毫秒"""
        backoff = min(self.INITIAL_RETRY_DELAY_MS * (2 ** attempt), self.MAX_RETRY_DELAY_MS)
        return int(backoff + random.uniform(0, self.MAX_JITTER_MS))

    @staticmethod
    def _parse_retry_after(value: Optional[str]) -> Optional[float]:
        # 只支持秒数形式，HTTP日期格式和 inf/nan 按未提供处理
        if not value:
            return None
        try:
            seconds = float(value)
        except ValueError:
            return None
        if not math.isfinite(seconds):
            return None
        return max(seconds, 0.0)

    async def _sleep(self, delay_ms: int) -> None:
        await asyncio.sleep(delay_ms / 1000)

    async def _raise_http_error(self, response: httpx.Response) -> None:
        status = response.status_code
        await response.aread()
        try:
            error_body = response.json()
        except ValueError:
            error_body = {"message": response.text}

        error_message = None
        if isinstance(error_body, dict):
            error = error_body.get("error")
            if isinstance(error, dict):
                error_message = error.get("message")
            error_message = error_message or error_body.get("message")
        error_message = error_message or "Unknown error"

        logger.error(
            "HTTP error from OpenRouter: status=%d message=%s body=%s",
            status, error_message, error_body,
        )

        context = {"status": status, "errorBody": error_body}
        if status in (401, 403):
            raise OpenRouterAuthError(f"认证失败: {error_message}", context)
        if status == 429:
            raise OpenRouterRateLimitError(
                f"请求频率超限: {error_message}",
                retry_after=self._parse_retry_after(response.headers.get("retry-after")),
                context=context,
            )
        if status >= 500:
            raise OpenRouterServerError(f"服务端错误: {error_message}", context)
        raise OpenRouterUnexpectedResponseError(
            f"请求失败，状态码 {status}: {error_message}", context
        )

    def _parse_response(self, response: httpx.Response) -> ChatResponse:
        try:
            data = response.json()
        except ValueError as e:
            logger.error("Failed to parse response JSON: %s", e)
            raise OpenRouterUnexpectedResponseError(
                "响应不是合法的JSON", {"error": str(e)}
            ) from e

        choices = data.get("choices") if isinstance(data, dict) else None
        if not isinstance(choices, list) or not choices:
            logger.error("Response missing choices: %s", data)
            raise OpenRouterUnexpectedResponseError("响应缺少 choices", {"responseData": data})

        first_choice = choices[0]
        if isinstance(first_choice, dict) and first_choice.get("finish_reason") == "content_filter":
            raise OpenRouterSafetyError(
                "内容因安全策略被过滤", {"finishReason": "content_filter"}
            )

        try:
            return ChatResponse.model_validate(data)
        except PydanticValidationError as e:
            raise OpenRouterSchemaError(
                "响应结构不符合预期",
                {"errors": e.errors(include_url=False), "responseData": data},
            ) from e

    async def _iter_sse_chunks(self, response: httpx.Response) -> AsyncIterator[ChatChunk]:
        """按行解析 server-sent events，data: [DONE] 表示结束"""
        try:
            async for line in response.aiter_lines():
                chunk = self._parse_sse_line(line.strip())
                if chunk is _SSE_DONE:
                    return
                if chunk is not None:
                    yield chunk
        except httpx.HTTPError as e:
            raise OpenRouterStreamError("流式响应中断", {"error": str(e)}) from e

    @staticmethod
    def _parse_sse_line(line: str) -> Any:
        # 空行是事件分隔符，冒号开头是注释（如 keep-alive），event:/id: 字段忽略
        if not line.startswith("data:"):
            return None

        data = line[len("data:"):].strip()
        if data == "[DONE]":
            return _SSE_DONE

        try:
            raw = json.loads(data)
        except ValueError as e:
            raise OpenRouterStreamError("流式响应数据无法解析", {"line": data[:500]}) from e

        if isinstance(raw, dict) and raw.get("error"):
            raise OpenRouterStreamError("流式响应返回错误", {"error": raw["error"]})

        try:
            return ChatChunk.model_validate(raw)
        except PydanticValidationError as e:
            raise OpenRouterStreamError(
                "流式响应结构不符合预期", {"errors": e.errors(include_url=False)}
            ) from e

    def _emit_metric(self, event: str, meta: Dict[str, Any]) -> None:
        if self._metrics_client is None:
            return
        try:
            self._metrics_client.record_metric(event, meta)
        except Exception:
            logger.warning("Failed to record metric %s", event, exc_info=True)

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        return int((time.monotonic() - start) * 1000)
