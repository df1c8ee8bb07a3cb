from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.websocket import router as ws_router
from .core.config import get_settings

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
log = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.openai_api_key:
        log.info(f"🚀 cookalong ready (assistant: {settings.assistant_model}, stt: {settings.transcription_model})")
    else:
        log.warning("⚠️ OPENAI_API_KEY is not set: manual cooking works, voice and questions do not")
    yield
    log.info("👋 cookalong shutting down")


app = FastAPI(
    title="cookalong",
    version="0.1.0",
    description="Voice-guided Cook Along assistant",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ws_router)


@app.get("/api/health")
async def health_check():
    return {
        "status": "ok",
        "openai_configured": bool(settings.openai_api_key),
        "listen_timeout_sec": settings.listen_timeout_sec,
    }
