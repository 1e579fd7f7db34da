"""
EchoMail Backend API
FastAPI application for personalized bulk email campaigns sent through Gmail.
"""

import logging
import os
from typing import List

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from echomail.routers import attachments, campaigns, compose, contacts, drafts, send, templates, tracking, webhooks
from echomail.db import supabase_admin
from echomail.services.store import StoreUnavailableError

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="EchoMail API",
    description="Personalized bulk email through Gmail, with open/click tracking",
    version="0.1.0",
)


def get_cors_origins() -> List[str]:
    """
    Build the list of allowed CORS origins.

    Always includes http://localhost:3000 (the Next.js dev server). Extra
    origins come from the CORS_ORIGINS environment variable as a
    comma-separated list, e.g.:
        CORS_ORIGINS=https://echomail.app,https://preview.echomail.app

    Duplicates are removed while preserving order.
    """
    origins = ["http://localhost:3000"]

    cors_env = os.getenv("CORS_ORIGINS", "").strip()
    if cors_env:
        origins.extend(o.strip() for o in cors_env.split(",") if o.strip())

    return list(dict.fromkeys(origins))


app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
    logger.error(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": f"Database client unavailable: {exc}"})


# Include routers
app.include_router(send.router, prefix="/api", tags=["send"])
app.include_router(compose.router, prefix="/api", tags=["compose"])
app.include_router(attachments.router, prefix="/api", tags=["attachments"])
app.include_router(campaigns.router, prefix="/api/campaigns", tags=["campaigns"])
app.include_router(drafts.router, prefix="/api/drafts", tags=["drafts"])
app.include_router(contacts.router, prefix="/api/contacts", tags=["contacts"])
app.include_router(templates.router, prefix="/api/templates", tags=["templates"])
app.include_router(webhooks.router, prefix="/api/webhooks", tags=["webhooks"])
# Tracking links are embedded in sent mail, so they live outside /api.
app.include_router(tracking.router, tags=["tracking"])


@app.get("/")
async def root():
    return {"message": "EchoMail API", "version": "0.1.0"}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/health/db")
async def health_db():
    """
    Test the Supabase database connection.

    Runs a one-row SELECT on email_campaigns through the admin client.
    Returns 503 on failure.
    """
    if supabase_admin is None:
        raise HTTPException(
            status_code=503,
            detail="Database client unavailable: SUPABASE_SERVICE_KEY is not configured",
        )

    try:
        supabase_admin.table("email_campaigns").select("id").limit(1).execute()
        return {"status": "ok", "database": "reachable"}
    except Exception as exc:
        logger.error(f"Database health check failed: {exc}")
        raise HTTPException(
            status_code=503,
            detail=f"Database connection failed: {str(exc)}",
        )
