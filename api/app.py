from dotenv import load_dotenv

# Load environment variables BEFORE any imports that read settings
load_dotenv()

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from api.dependencies import get_app_credentials, get_app_settings
from api.routers import review, webhook

settings = get_app_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Resolves the GitHub App credentials at startup so a production
    misconfiguration fails the boot instead of the first webhook.
    """
    credentials = get_app_credentials()
    if credentials.is_mock:
        logger.warning("Running with mock GitHub App credentials; GitHub calls will fail")
    logger.info("AI PR reviewer started (environment=%s)", settings.environment)
    yield


app = FastAPI(
    title="AI Pull Request Reviewer",
    description="""
    GitHub App that reviews pull requests with an AI completion backend.

    ## Endpoints

    * **GitHub webhook** - `pull_request` events trigger an automatic review
    * **Manual review** - review any pull request the App is installed on
    * **Diff review** - review a raw diff and get the comments back as JSON
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(
    review.router,
    prefix="/api",
    tags=["Review"]
)

app.include_router(
    webhook.router,
    prefix="/api",
    tags=["GitHub"]
)


@app.get("/health")
def health():
    return {"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()}


def run_server():
    """
    Run the API server.

    This function is used as an entry point for the CLI command.
    """
    uvicorn.run(
        "api.app:app",
        host="0.0.0.0",
        port=settings.port,
        reload=not settings.is_production,
    )


if __name__ == "__main__":
    run_server()
