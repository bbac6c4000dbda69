import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import settings
from core.logging_config import configure_logging
from core.store import MaterialStore
from routers import auth, compare, materials, progress, recall_tests, study

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: ensure store indexes exist
    await app.state.store.create_indexes()
    logger.info("ChunkMaster API ready")
    yield
    # Shutdown: nothing to clean up (pymongo closes connections automatically)


def create_app(store: Optional[MaterialStore] = None) -> FastAPI:
    configure_logging(settings.log_level)

    app = FastAPI(
        title="ChunkMaster API",
        description="Chunk memorization trainer: recall grading, hints and progress statistics",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.store = store or MaterialStore()

    # CORS — update origins for your frontend domain in production
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth.router)
    app.include_router(compare.router)
    app.include_router(materials.router)
    app.include_router(study.router)
    app.include_router(recall_tests.router)
    app.include_router(progress.router)

    @app.get("/", tags=["Health"])
    async def health():
        return {"status": "ok", "service": "ChunkMaster API"}

    return app


app = create_app()
