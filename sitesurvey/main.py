import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware

from sitesurvey.config import settings
from sitesurvey.database import create_tables
from sitesurvey.dependencies import verify_api_key
from sitesurvey.routers.auth import router as auth_router
from sitesurvey.routers.sessions import router as sessions_router
from sitesurvey.routers.uploads import router as uploads_router
from sitesurvey.utils.exceptions import register_exception_handlers

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Path(settings.data_dir).mkdir(parents=True, exist_ok=True)
    await create_tables()
    logger.info("Site survey API ready (remote store at %s)", settings.survey_api_url)
    yield


app = FastAPI(
    title="Site Survey API",
    description="Room-by-room camera installation surveys with offline-safe submission",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

_api_key_dep = [Depends(verify_api_key)]

app.include_router(auth_router, prefix="/api/v1", dependencies=_api_key_dep)
app.include_router(sessions_router, prefix="/api/v1", dependencies=_api_key_dep)
app.include_router(uploads_router, prefix="/api/v1", dependencies=_api_key_dep)


@app.get("/health")
async def health_check():
    return {"status": "success", "data": {"service": "site-survey-api", "version": "0.1.0"}, "message": None}
