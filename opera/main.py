from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from opera.api.routes import commands, jobs, projects, research, reviews
from opera.config import settings
from opera.services.logger import logger
from opera.services.pipeline import Pipeline, build_pipeline


def create_app(pipeline: Pipeline | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        app.state.pipeline = pipeline or build_pipeline(settings)
        logger.info("Research pipeline ready")
        yield
        # Shutdown
        await app.state.pipeline.cycles.wait()
        await app.state.pipeline.job_queue.shutdown()

    app = FastAPI(
        title="Opera",
        description="Collaborative OSINT research pipeline",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    app.include_router(projects.router)
    app.include_router(research.router)
    app.include_router(reviews.router)
    app.include_router(commands.router)
    app.include_router(jobs.router)

    @app.get("/api/health")
    async def health():
        return {"status": "ok", "service": "opera"}

    return app


app = create_app()
