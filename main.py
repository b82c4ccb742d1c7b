"""Main application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from market_gateway.api.dependencies import close_gateway_service, get_gateway_service
from market_gateway.api.error_handlers import register_exception_handlers
from market_gateway.api.routes import debug_router, router
from market_gateway.utils.config import config
from market_gateway.utils.logger import StructuredLogger
from market_gateway.utils.trace_context import TRACE_HEADER, trace_scope

logger = StructuredLogger("App")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate configuration and load the symbol table before serving."""
    try:
        config.validate()
    except ValueError as e:
        logger.critical("Configuration error", exception=e)
        raise
    gateway = get_gateway_service()
    logger.info(
        "Gateway started",
        context={"assets": len(gateway.supported_assets()), "upstream": config.upstream.base_url},
    )
    yield
    close_gateway_service()


app = FastAPI(
    title="Market Gateway",
    description="Cryptocurrency prices, overviews and history from one upstream provider",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_allowed_origins,
    allow_credentials="*" not in config.cors_allowed_origins,
    allow_methods=["GET"],
    allow_headers=["*"],
    expose_headers=[TRACE_HEADER],
)


@app.middleware("http")
async def trace_requests(request: Request, call_next):
    """Run each request under a trace ID, echoed back in the response headers."""
    with trace_scope(request.headers.get(TRACE_HEADER)) as trace_id:
        response = await call_next(request)
        response.headers[TRACE_HEADER] = trace_id
        return response


register_exception_handlers(app)

app.include_router(router, prefix="/api", tags=["market"])
app.include_router(debug_router, prefix="/api", tags=["debug"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
