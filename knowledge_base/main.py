"""
Main FastAPI application entry point.
Responsibilities: App setup, router registration, error rendering, startup/shutdown hooks.
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .routes import documents, search
from .db import init_db
from .dependencies import get_embedding_client
from .embedding import SentenceTransformerEmbeddingClient
from .errors import KnowledgeBaseError
from .logging_config import logger

# -------------------------------------------------
# App setup
# -------------------------------------------------

app = FastAPI(title="Knowledge Base", version="0.1.0")

# Register routers
app.include_router(search.router)
app.include_router(documents.router)


@app.exception_handler(KnowledgeBaseError)
async def knowledge_base_error_handler(request: Request, exc: KnowledgeBaseError):
    """Render domain errors as {"error": message, ...extra} with their status code."""
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=exc.message)
    else:
        logger.info("Request rejected", path=request.url.path, status=exc.status_code,
                    error=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message, **exc.extra})


@app.get("/health")
async def health():
    """Liveness check."""
    return {"status": "ok"}


@app.on_event("startup")
async def startup_event():
    """Initialize the database and warm up the embedding model on startup."""
    try:
        logger.info("Initializing database...")
        init_db()
        logger.info("Database ready")

        embedder = get_embedding_client()
        if isinstance(embedder, SentenceTransformerEmbeddingClient):
            logger.info("Preloading embedding model...")
            embedder.preload_model()
            logger.info("Embedding model ready")
        elif embedder is None:
            logger.warning("No embedding provider configured; documents will not be searchable")

    except Exception as e:
        logger.error("Startup initialization error", exc_info=e)
        # Continue anyway - app might still be usable


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    logger.info("Application shutting down")
