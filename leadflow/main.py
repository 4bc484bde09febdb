"""
FastAPI Application Entry Point
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from leadflow.api.v1.routes import api_router
from leadflow.core.config import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan - startup and shutdown events.
    
    Startup:
    - Validates the Supabase configuration
    - Initializes the workspace manager
    
    Shutdown:
    - Closes every open workspace
    """
    # ========================
    # STARTUP
    # ========================
    logger.info("Starting LeadFlow CRM...")
    
    settings = get_settings()
    strict_validation = settings.environment == "production"
    
    try:
        from leadflow.core.validation import validate_config_on_startup
        validate_config_on_startup(strict=strict_validation)
    except RuntimeError as e:
        if strict_validation:
            logger.error(f"Startup failed: {e}")
            raise
        else:
            logger.warning(f"Configuration warnings (non-fatal in {settings.environment}): {e}")
    
    from leadflow.domain.services.workspace_manager import WorkspaceManager
    await WorkspaceManager.get_instance()
    
    logger.info("LeadFlow CRM started successfully")
    
    yield  # Application is running
    
    # ========================
    # SHUTDOWN
    # ========================
    logger.info("Shutting down LeadFlow CRM...")
    
    try:
        manager = await WorkspaceManager.get_instance()
        await manager.shutdown()
        WorkspaceManager.reset_instance()
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")
    
    logger.info("LeadFlow CRM shutdown complete")


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title="LeadFlow CRM",
        description="Real-estate lead pipeline for CEO and employee teams",
        version="1.0.0",
        lifespan=lifespan
    )
    
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    
    app.include_router(api_router, prefix=settings.api_prefix)
    
    @app.get("/")
    async def root():
        return {"message": "LeadFlow CRM API", "status": "running"}
    
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
