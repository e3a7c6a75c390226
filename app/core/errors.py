from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """对外暴露的机器可读错误码"""

    # 客户端错误 (4xx)
    INVALID_INPUT = "InvalidInput"
    UNAUTHORIZED = "Unauthorized"
    NOT_FOUND = "NotFound"
    VALIDATION_ERROR = "ValidationError"
    INVALID_AI_RESPONSE = "InvalidAIResponse"
    RATE_LIMITED = "RateLimited"

    # 服务端错误 (5xx)
    INTERNAL_ERROR = "InternalError"
    EXTERNAL_SERVICE_ERROR = "ExternalServiceError"


class DomainError(Exception):
    """业务异常基类，携带错误码与HTTP状态码"""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = 500,
        details: Optional[Any] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details

    def to_dict(self) -> Dict[str, str]:
        return {"code": self.code.value, "message": self.message}


class ValidationError(DomainError):
    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(ErrorCode.VALIDATION_ERROR, message, 400, details)


class NotFoundError(DomainError):
    def __init__(self, resource: str = "资源"):
        super().__init__(ErrorCode.NOT_FOUND, f"{resource}不存在", 404)


class RateLimitError(DomainError):
    def __init__(self, message: str = "请求过于频繁，请稍后再试"):
        super().__init__(ErrorCode.RATE_LIMITED, message, 429)


class InvalidAIResponseError(DomainError):
    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(ErrorCode.INVALID_AI_RESPONSE, message, 422, details)


class ExternalServiceError(DomainError):
    def __init__(self, service: str, message: Optional[str] = None, details: Optional[Any] = None):
        super().__init__(
            ErrorCode.EXTERNAL_SERVICE_ERROR,
            message or f"外部服务异常: {service}",
            502,
            details,
        )
        self.service = service
