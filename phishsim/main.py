"""
PhishSim - Phishing Awareness Simulation Platform
Main FastAPI Application
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import Engine

from . import __version__
from .config import Settings, load_settings
from .database import init_db, make_engine, make_session_factory
from .routers import campaigns, stats, tracking
from .auth import routes as auth_routes
from .services.dispatcher import CampaignDispatcher, DispatchSupervisor
from .services.mailer import Mailer

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    settings = app.state.settings

    init_db(app.state.engine)
    logger.info("Database initialized")
    logger.info(f"Tracking links use {settings.public_base_url}")

    yield  # Application runs here

    await app.state.supervisor.shutdown()
    logger.info("Shutdown complete")


def create_app(settings: Settings = None, engine: Engine = None, transport=None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Runtime settings; read from the environment when omitted
        engine: SQLAlchemy engine; built from ``settings.database_url`` when omitted
        transport: Email transport with ``send(from, to, subject, html) -> bool``;
            an SMTP ``Mailer`` when omitted
    """
    if settings is None:
        settings = load_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if engine is None:
        engine = make_engine(settings.database_url)
    session_factory = make_session_factory(engine)

    if transport is None:
        transport = Mailer.from_settings(settings)

    dispatcher = CampaignDispatcher(
        db_session_factory=session_factory,
        transport=transport,
        settings=settings,
    )

    app = FastAPI(
        title="PhishSim",
        description="Phishing awareness simulation platform",
        version=__version__,
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.supervisor = DispatchSupervisor(dispatcher, max_pending=settings.max_pending_jobs)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_routes.router)
    app.include_router(campaigns.router)
    app.include_router(stats.router)
    app.include_router(tracking.router)

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("phishsim.main:app", host="0.0.0.0", port=8080, reload=False)
