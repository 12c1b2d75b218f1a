import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from vidtube.config import settings
from vidtube.db.session import init_db
from vidtube.errors import register_exception_handlers
from vidtube.rate_limit import limiter
from vidtube.comments.routing import router as comments_router
from vidtube.subscriptions.routing import router as subscriptions_router
from vidtube.users.routing import router as users_router
from vidtube.videos.routing import router as videos_router

# Logging
_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
logging.basicConfig(
    level=_level,
    format='%(asctime)s %(levelname)s %(name)s %(message)s',
)
for _logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
    logging.getLogger(_logger_name).setLevel(_level)

logger = logging.getLogger("vidtube")

# CORS
# Use env-driven origins with safe local defaults from settings
origins = [origin for origin in settings.CORS_ORIGINS if origin]
if not origins:
    origins = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ]


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        client_host = request.client.host if request.client else "unknown"
        logger.info(f"Request: {request.method} {request.url.path} from {client_host}")

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            logger.error(f"Request failed: {request.method} {request.url.path} after {process_time:.2f}s - {e}")
            raise

        process_time = time.time() - start_time
        logger.info(f"Response: {request.method} {request.url.path} {response.status_code} in {process_time:.2f}s")
        response.headers["X-Process-Time"] = f"{process_time:.4f}"
        response.headers["X-API-Version"] = "1.0.0"
        return response


app = FastAPI(
    title="VidTube API",
    description=(
        "VidTube is a backend for a video-sharing platform: accounts with JWT sessions, "
        "video publishing, comments and channel subscriptions. "
        "It is built with FastAPI and SQLModel.\n\n"
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.state.limiter = limiter
register_exception_handlers(app)

app.add_middleware(SlowAPIMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Prometheus metrics
Instrumentator().instrument(app).expose(app, endpoint="/metrics")

app.include_router(users_router, prefix='/api/v1/users')
app.include_router(videos_router, prefix='/api/v1/video')
app.include_router(comments_router, prefix='/api/v1/comments')
app.include_router(subscriptions_router, prefix='/api/v1/subscription')


@app.get("/healthChecker")
def read_api_health():
    return {"status": "ok"}
