"""FastAPI entrypoint for Chainview webservice."""

from contextlib import asynccontextmanager
from typing import Any, Dict, List, Union

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse

from chainview.commons.chainview_logger import ChainviewLogger
from chainview.commons.errors import ChainviewError, QueryExecutionError
from chainview.configs import SERVICE_NAME, WEBSERVER_HOST, WEBSERVER_PORT
from chainview.db.connection import MongoConnection
from chainview.db.repository import EntityRepository
from chainview.upstream.node_client import NodeClient
from chainview.webservice.routers.accounts import router as accounts_router
from chainview.webservice.routers.action_traces import router as action_traces_router
from chainview.webservice.routers.actions import router as actions_router
from chainview.webservice.routers.auth import router as auth_router
from chainview.webservice.routers.blocks import router as blocks_router
from chainview.webservice.routers.chain import router as chain_router
from chainview.webservice.routers.health import router as health_router
from chainview.webservice.routers.transactions import router as transactions_router
from chainview.webservice.routers.users import router as users_router
from chainview.webservice.schemas.common import ErrorResponse

logger = ChainviewLogger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the MongoDB pool and node client once per process."""
    connection = MongoConnection()
    app.state.connection = connection
    app.state.repository = EntityRepository(connection)
    app.state.node_client = NodeClient()
    await app.state.repository.ensure_indexes()
    logger.info(f"{SERVICE_NAME} started on {WEBSERVER_HOST}:{WEBSERVER_PORT}.")
    try:
        yield
    finally:
        await app.state.node_client.aclose()
        connection.close()


def _error_responses(*statuses: int) -> Dict[Union[int, str], Dict[str, Any]]:
    """OpenAPI entries documenting the error envelope for ``statuses``."""
    return {status: {"model": ErrorResponse} for status in statuses}


def _field_violations(exc: RequestValidationError) -> List[Dict[str, Any]]:
    """Group pydantic errors by (field, location)."""
    grouped: Dict[tuple, List[str]] = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ())]
        location = loc[0] if loc else "body"
        field = ".".join(loc[1:]) or location
        grouped.setdefault((field, location), []).append(error.get("msg", "Invalid value."))
    return [{"field": field, "location": location, "messages": messages} for (field, location), messages in grouped.items()]


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    app = FastAPI(
        title="Chainview API",
        version="1.0.0",
        description=(
            "REST gateway for a blockchain node. Mirrors blocks, transactions, actions "
            "and accounts for filtered, sorted and paginated queries."
        ),
        openapi_url="/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    @app.exception_handler(ChainviewError)
    async def chainview_error_handler(request: Request, exc: ChainviewError) -> JSONResponse:
        if isinstance(exc, QueryExecutionError):
            logger.error(f"{request.method} {request.url.path} failed: {exc.cause!r}")
        return JSONResponse(status_code=exc.status, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"code": "validation_error", "message": "Validation Error", "errors": _field_violations(exc)},
        )

    @app.get("/", tags=["health"])
    def root() -> dict:
        return {
            "status": "up",
            "service": SERVICE_NAME,
            "host": WEBSERVER_HOST,
            "port": WEBSERVER_PORT,
        }

    @app.get("/v1/status", tags=["health"], response_class=PlainTextResponse)
    def status() -> str:
        return "OK"

    app.include_router(health_router, prefix="/v1")
    app.include_router(auth_router, prefix="/v1", responses=_error_responses(400, 401, 409))
    app.include_router(users_router, prefix="/v1", responses=_error_responses(400, 401, 409))
    for router in (accounts_router, blocks_router, transactions_router, actions_router, action_traces_router):
        app.include_router(router, prefix="/v1", responses=_error_responses(400, 401, 404, 500, 502, 504))
    app.include_router(chain_router, prefix="/v1", responses=_error_responses(401, 502, 504))

    return app


app = create_app()


def serve():
    """Run the API with uvicorn."""
    uvicorn.run("chainview.webservice.main:app", host=WEBSERVER_HOST, port=WEBSERVER_PORT)
