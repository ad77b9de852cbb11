from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from typing import Optional
import logging

from app.api import solve
from app.core.config import get_settings
from app.core.startup import AssistantContext, build_context, run_startup_checks

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(assistant: Optional[AssistantContext] = None) -> FastAPI:
    """Build the API around one assistant context"""
    settings = assistant.settings if assistant else get_settings()

    # Run startup checks
    run_startup_checks(settings)

    app = FastAPI(title="Study Assistant API", version="1.0.0")
    app.state.assistant = assistant or build_context(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins or ["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=3600,
    )
    logger.info(f"CORS middleware configured with origins: {settings.allowed_origins}")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Release the audio output on shutdown"""
        logger.info("🛑 Application shutdown")
        await app.state.assistant.close()

    app.include_router(solve.router, prefix="/api", tags=["solve"])

    @app.get("/")
    def read_root():
        return {"message": "Study Assistant API", "version": "1.0.0", "status": "healthy"}

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        assistant_ctx = app.state.assistant
        return {
            "status": "healthy" if assistant_ctx.settings.gemini_api_key else "degraded",
            "backend_configured": bool(assistant_ctx.settings.gemini_api_key),
            "agents": [agent.value for agent in assistant_ctx.registry.agents()],
            "cached_results": assistant_ctx.cache.results.get_size(),
            "cached_audio": assistant_ctx.cache.audio.get_size(),
            "background_tasks": assistant_ctx.orchestrator.pending_tasks()
        }

    return app


app = create_app()
