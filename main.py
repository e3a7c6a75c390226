import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.database import engine, Base
from app.core.errors import DomainError, ErrorCode
from app.core.logging_config import setup_logging
from app.api.v1 import ai, system, words
from app.models import vocabulary  # noqa: F401  注册ORM模型

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # 启动时创建数据库表
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    if not settings.OPENROUTER_API_KEY:
        logger.warning("OPENROUTER_API_KEY is not set, AI endpoints will be unavailable")
    yield
    # 关闭时清理资源
    await engine.dispose()

app = FastAPI(
    title="单词学习 API",
    description="AI 辅助的词汇学习服务",
    version="1.0.0",
    lifespan=lifespan
)

# CORS配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: [%s] %s", request.method, request.url.path, exc.code.value, exc.message)
    else:
        logger.warning("%s %s rejected: [%s] %s", request.method, request.url.path, exc.code.value, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "code": exc.status_code,
            "message": exc.message,
            "data": {"error": exc.code.value},
        },
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return JSONResponse(
        status_code=400,
        content={
            "code": 400,
            "message": "; ".join(messages) or "请求参数错误",
            "data": {"error": ErrorCode.INVALID_INPUT.value},
        },
    )


# 注册路由
app.include_router(words.router, prefix="/api/v1", tags=["单词"])
app.include_router(ai.router, prefix="/api/v1/ai", tags=["AI"])
app.include_router(system.router, prefix="/api/v1/system", tags=["系统"])

@app.get("/health")
async def health():
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
