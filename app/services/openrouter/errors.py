from typing import Any, Dict, Optional

from app.core.errors import DomainError, ErrorCode


class OpenRouterError(DomainError):
    """OpenRouter 相关异常基类"""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = 500,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, status_code, details=context)
        self.context = context or {}


class OpenRouterConfigurationError(OpenRouterError):
    """缺少或错误的配置（构造时抛出）"""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.EXTERNAL_SERVICE_ERROR, message, 500, context)


class OpenRouterValidationError(OpenRouterError):
    """请求消息、参数或 response_format 不合法"""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.VALIDATION_ERROR, message, 400, context)


class OpenRouterNetworkError(OpenRouterError):
    """超时、连接失败或请求被取消"""

    def __init__(
        self,
        message: str,
        retryable: bool = True,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(ErrorCode.EXTERNAL_SERVICE_ERROR, message, 503, context)
        self.retryable = retryable

    @property
    def timed_out(self) -> bool:
        return bool(self.context.get("timeout_ms")) and not self.context.get("cancelled")


class OpenRouterAuthError(OpenRouterError):
    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.UNAUTHORIZED, message, 401, context)


class OpenRouterRateLimitError(OpenRouterError):
    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(ErrorCode.RATE_LIMITED, message, 429, context)
        self.retry_after = retry_after


class OpenRouterServerError(OpenRouterError):
    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.EXTERNAL_SERVICE_ERROR, message, 502, context)


class OpenRouterSafetyError(OpenRouterError):
    """模型拒绝或内容被安全策略过滤"""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.INVALID_AI_RESPONSE, message, 422, context)


class OpenRouterSchemaError(OpenRouterError):
    """返回内容不是合法JSON或不符合约定结构"""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.INVALID_AI_RESPONSE, message, 422, context)


class OpenRouterStreamError(OpenRouterError):
    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.EXTERNAL_SERVICE_ERROR, message, 500, context)


class OpenRouterUnexpectedResponseError(OpenRouterError):
    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.INVALID_AI_RESPONSE, message, 502, context)
