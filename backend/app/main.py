import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

logging.basicConfig(level=logging.INFO)
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from app.config import settings
from app.database import engine
from app.middleware.rate_limit import limiter
from app.middleware.request_logger import RequestLoggerMiddleware
from app.middleware.timeout import TimeoutMiddleware
from app.models.db import Base
from app.models.schemas import HealthResponse
from app.routers import books, categories, dictionary, hadith, quran, search, stats
from app.services import search_index
from app.services.llm import close_http_client

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create tables on startup
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_http_client()
    await search_index.close_client()
    await engine.dispose()


app = FastAPI(
    title="Maktaba",
    description="Search and reading API for the Quran, Hadith collections and classical Arabic books",
    version=VERSION,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(SlowAPIMiddleware)
app.add_middleware(TimeoutMiddleware, timeout_seconds=settings.request_timeout_seconds)
app.add_middleware(RequestLoggerMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-Internal-Secret"],
)


for module in (search, dictionary, quran, hadith, categories, books, stats):
    app.include_router(module.router, prefix="/api")


@app.get("/api/health", response_model=HealthResponse)
async def health_check():
    return HealthResponse(status="ok", version=VERSION)
