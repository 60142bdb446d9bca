from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from core.config import ConfigManager
from core.session import InterviewSession


def create_app(config_manager: ConfigManager, session: InterviewSession) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(title="Mock Interviewer", version="1.0.0")

    # CORS for local network access
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Store references for route handlers
    app.state.config_manager = config_manager
    app.state.session = session
    app.state.background_tasks = set()

    from api.routes.interview import router as interview_router
    from api.routes.audio import router as audio_router

    app.include_router(interview_router, prefix="/api/interview", tags=["interview"])
    app.include_router(audio_router, prefix="/api/audio", tags=["audio"])

    @app.get("/api/health")
    async def health():
        return {
            "status": "ok",
            "phase": session.phase.value,
            "floor": session.turns.floor.value,
            "provider": config_manager.config.provider,
            "content_available": session.gateway.provider is not None,
        }

    # Serve the built web client
    # MUST be mounted AFTER all API routes, mount at "/" catches everything
    static_dir = Path(__file__).resolve().parent.parent / "static"
    if static_dir.exists():
        app.mount("/", StaticFiles(directory=str(static_dir), html=True), name="static")

    return app
