# tests/conftest.py
import os
import tempfile

import httpx
import pytest

# 必须在导入 app 之前设置，Settings 在导入时读取环境变量
_TMP_DIR = tempfile.mkdtemp(prefix="words-api-test-")
TEST_DB_PATH = os.path.join(_TMP_DIR, "test.db")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
os.environ["OPENROUTER_API_KEY"] = "test-key"
os.environ["OPENROUTER_MODEL"] = "test/model"
os.environ["APP_URL"] = "http://localhost:3000"
os.environ["APP_TITLE"] = "WordsTest"

from app.schemas.ai import OpenRouterConfig  # noqa: E402
from app.services.openrouter import OpenRouterService  # noqa: E402


def chat_completion(content="Hello!", finish_reason="stop", model="test/model"):
    """构造一个 OpenAI 兼容的 chat completion 响应体"""
    return {
        "id": "gen-123",
        "model": model,
        "created": 1700000000,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": finish_reason,
            }
        ],
        "usage": {"prompt_tokens": 12, "completion_tokens": 34, "total_tokens": 46},
    }


@pytest.fixture
def openrouter_config():
    return OpenRouterConfig(
        api_key="test-key",
        base_url="https://openrouter.test/api/v1",
        default_model="test/model",
        timeout_ms=1000,
        app_url="http://localhost:3000",
        app_title="WordsTest",
    )


@pytest.fixture
def make_service(openrouter_config):
    """
    用 MockTransport 构造 OpenRouterService，重试等待被替换为只记录延迟。
    返回的 service 带有 .delays 列表。
    """

    def _make(handler, config=None, metrics_client=None):
        service = OpenRouterService(
            config or openrouter_config,
            transport=httpx.MockTransport(handler),
            metrics_client=metrics_client,
        )
        service.delays = []

        async def _record_sleep(delay_ms):
            service.delays.append(delay_ms)

        service._sleep = _record_sleep
        return service

    return _make
