"""
MediChat gateway — authenticated medical chat over HTTP and WebSocket.

Run: uvicorn medichat.main:app --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import medichat.core.config as _config_mod
from medichat import __version__
from medichat.api import create_api_router, create_ws_router
from medichat.core.logging import setup_logging
from medichat.errors import ChatError
from medichat.services import Services, build_services

# --- Setup ---
setup_logging()
logger = logging.getLogger("medichat")


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    msg = first.get("msg", "Invalid value")
    return f"{field}: {msg}" if field else msg


def create_app(services: Services | None = None) -> FastAPI:
    """
    Build the FastAPI app.

    Without `services`, everything is wired from the environment on startup.
    Tests pass a prebuilt Services with fake providers.
    """
    cfg = _config_mod.config
    app = FastAPI(title="MediChat", version=__version__)
    app.state.services = services

    if cfg.server.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(cfg.server.cors_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError):
        if exc.status_code >= 500:
            logger.error("%s on %s: %s", exc.kind, request.url.path, exc.detail or exc.message)
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            {"error": exc.detail}, status_code=exc.status_code, headers=exc.headers
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse({"error": _validation_message(exc)}, status_code=400)

    @app.on_event("startup")
    async def startup():
        if app.state.services is None:
            app.state.services = build_services(_config_mod.config)
        await app.state.services.start()
        logger.info("MediChat %s ready", __version__)

    @app.on_event("shutdown")
    async def shutdown():
        if app.state.services is not None:
            await app.state.services.stop()

    app.include_router(create_api_router())
    app.include_router(create_ws_router())
    return app


app = create_app()


def run() -> None:
    import uvicorn

    server = _config_mod.config.server
    uvicorn.run("medichat.main:app", host=server.host, port=server.port)


if __name__ == "__main__":
    run()
