from app.services.openrouter.client import OpenRouterService, build_openrouter_config
from app.services.openrouter.message_composer import MessageComposer
from app.services.openrouter.schema_validator import SchemaValidator
from app.services.openrouter.errors import (
    OpenRouterError,
    OpenRouterConfigurationError,
    OpenRouterValidationError,
    OpenRouterNetworkError,
    OpenRouterAuthError,
    OpenRouterRateLimitError,
    OpenRouterServerError,
    OpenRouterSafetyError,
    OpenRouterSchemaError,
    OpenRouterStreamError,
    OpenRouterUnexpectedResponseError,
)
