import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from datachat.core.settings import get_settings
from datachat.infrastructure import OpenAIChatClient, configure_llm_client
from datachat.routes import analysis, upload


def create_app() -> FastAPI:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = FastAPI(title="Datachat Analysis API", version="0.1.0")

    settings = get_settings()
    if settings.openai_api_key:
        client = OpenAIChatClient(
            settings.openai_api_key,
            model=settings.model,
            api_base=settings.openai_base_url,
            timeout=settings.generation_timeout,
        )
        configure_llm_client(client)

    origins_env = os.getenv("API_CORS_ORIGINS", "")
    origins = [origin.strip() for origin in origins_env.split(",") if origin.strip()]
    if not origins:
        origins = ["http://localhost:3000", "http://127.0.0.1:3000"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(upload.router, prefix="/api")
    app.include_router(analysis.router, prefix="/api")

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "Datachat Analysis API",
                "docs": "/docs",
                "analyze": "/api/analyze",
            }
        )

    return app


app = create_app()
