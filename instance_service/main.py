"""
Instance Service. Serves stored BIM model instances behind a gateway.
Every request passes the AuthorizationGate; /ping is the only ungated route.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response, status

from instance_service.authorization import AuthorizationGate
from instance_service.config import (
    HTTP_HOST,
    HTTP_PORT,
    LOG_FORMAT,
    LOG_LEVEL,
    ScopeConfiguration,
)
from instance_service.database import dispose_engine
from instance_service.errors import RequestError, send_request_error
from instance_service.instances import router as instances_router
from instance_service.logging_setup import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging on startup; release pooled connections on shutdown."""
    setup_logging(LOG_LEVEL, LOG_FORMAT)
    logger.info("Instance service starting")
    yield
    dispose_engine()


async def ping(request: Request) -> Response:
    """Container health check; empty body."""
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def create_app(scope_config: ScopeConfiguration | None = None) -> FastAPI:
    """Build the app. Tests pass their own ScopeConfiguration to vary the required scope."""
    scope_config = scope_config or ScopeConfiguration.from_env()
    app = FastAPI(title="Instance Service", version="1.0.0", lifespan=lifespan)
    app.add_middleware(AuthorizationGate, scope_config=scope_config)

    @app.exception_handler(RequestError)
    async def request_error_handler(request: Request, exc: RequestError):
        return send_request_error(exc.kind)

    # methods=None: the health check answers every HTTP method
    app.add_route(scope_config.healthcheck_path, ping, methods=None, include_in_schema=False)
    app.include_router(instances_router, tags=["instances"])
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "instance_service.main:app",
        host=HTTP_HOST,
        port=HTTP_PORT,
    )
