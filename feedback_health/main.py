"""
Feedback Health Backend: FastAPI Entry Point

Initializes the FastAPI app, installs permissive CORS (the trigger is
called by schedulers and admin tooling from any origin) and registers
the weekly analysis router.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from feedback_health.api.analysis import router as analysis_router

app = FastAPI(
    title="Feedback Health API",
    description="Weekly feedback health analysis job",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)

# --- Register API routers ---
app.include_router(analysis_router)


@app.get("/health")
async def health_check():
    """Health check endpoint. Returns service status."""
    return {"status": "ok"}
