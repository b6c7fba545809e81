# FILE: main.py
"""
NeuroHub Backend - FastAPI Application
Version: 0.3.0

Features:
- Link a GitHub repository to a project
- Commit log ingestion with AI summaries (fallback summaries when the model is down)
- Repository indexing: per-file summaries + embeddings
- Semantic file search and streamed, context-guarded answers (SSE)

Run:
    uvicorn main:app --reload
"""
import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

# Load .env FIRST before any other imports that might need env vars
load_dotenv()

logging.basicConfig(
    level=os.getenv("NEUROHUB_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

from neurohub import __version__
from neurohub.db import init_db, DATABASE_URL
from neurohub.llm.clients import is_llm_available
from neurohub.projects.router import router as projects_router
from neurohub.rag import config as rag_config
from neurohub.rag.router import router as rag_router

logger = logging.getLogger("neurohub.main")

app = FastAPI(
    title="NeuroHub",
    version=__version__,
    description="Repository ingestion, commit summaries and code Q&A over GitHub projects",
)

# ====== CORS ======

_origins = [
    o.strip()
    for o in os.getenv(
        "NEUROHUB_CORS_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173",
    ).split(",")
    if o.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ====== STARTUP ======

@app.on_event("startup")
def on_startup():
    if DATABASE_URL.startswith("sqlite:///./"):
        os.makedirs("data", exist_ok=True)

    init_db()
    logger.info(f"[startup] database ready ({DATABASE_URL.split('://')[0]})")

    # Verify critical env vars
    if is_llm_available():
        logger.info("[startup] GOOGLE_API_KEY: [OK] set (summaries, embeddings, answers)")
    else:
        logger.warning("[startup] GOOGLE_API_KEY: [X] NOT SET - fallback summaries only, search disabled")

    if rag_config.GITHUB_TOKEN:
        logger.info("[startup] GITHUB_TOKEN: [OK] set")
    else:
        logger.warning("[startup] GITHUB_TOKEN: [X] NOT SET - unauthenticated GitHub rate limits apply")

    logger.info(
        f"[startup] auto ingest={rag_config.AUTO_INGEST}, refresh stale={rag_config.REFRESH_STALE_FILES}, "
        f"batch={rag_config.BATCH_SIZE}/{rag_config.BATCH_DELAY_SECONDS}s"
    )


# ====== ROUTERS ======

app.include_router(projects_router)
app.include_router(rag_router)


@app.get("/health")
def health():
    return {"status": "ok", "version": __version__}
