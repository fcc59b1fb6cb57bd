from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from planpay.api.routes import router
from planpay.api.services import Services, build_services
from planpay.config import load_config
from planpay.infra.logging import log_event


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Reason:
    - Collaborators are built once and handed in, never looked up globally.
    Benefit:
    - Tests pass fakes for the planner, tools and chain reader.
    """
    if services is None:
        services = build_services(load_config())

    app = FastAPI(title="planpay")
    app.state.services = services
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "x-payment"],
        expose_headers=[
            "X-Payment-Required",
            "X-Payment-Amount",
            "X-Payment-Network",
            "X-Payment-Recipient",
        ],
    )
    app.include_router(router)

    @app.exception_handler(RequestValidationError)
    async def _bad_request(request: Request, exc: RequestValidationError):
        return JSONResponse({"error": "Malformed request body", "errors": jsonable_encoder(exc.errors())}, status_code=400)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        log_event("http_unhandled_error", path=request.url.path, error=f"{type(exc).__name__}: {exc}")
        return JSONResponse({"error": str(exc) or type(exc).__name__}, status_code=500)

    return app
