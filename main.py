import uvicorn
import time
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from deployer.api.dependencies import get_controller, get_pipeline_config
from deployer.api.dispatch import router as dispatch_router
from deployer.api.runs import router as runs_router
from deployer.api.webhooks import router as webhooks_router
from deployer.core.config import LOG_LEVEL
from deployer.utils.logging_config import setup_logging

setup_logging(level=LOG_LEVEL)
logger = logging.getLogger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Fail at startup, not mid-run, on a broken pipeline definition
    config = get_pipeline_config()
    logger.info("Serving pipeline '%s' for %s", config.name, config.deploy_ref)
    yield
    if get_controller.cache_info().currsize:
        logger.info("Shutting down: cancelling active runs")
        await get_controller().shutdown()


app = FastAPI(title="Pages Deployer", lifespan=lifespan)


# ---------------------------------------------------------------------------
# Logging Middleware
# ---------------------------------------------------------------------------
class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        client_host = request.client.host if request.client else "unknown"
        logger.info(f"Incoming: {request.method} {request.url.path} from {client_host}")

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"Request failed: {request.method} {request.url.path} - Error: {str(e)}")
            raise

        process_time = (time.time() - start_time) * 1000
        logger.info(
            f"Outgoing: {request.method} {request.url.path} - "
            f"Status: {response.status_code} - "
            f"Time: {process_time:.2f}ms"
        )
        return response


app.add_middleware(LoggingMiddleware)


@app.get("/health")
async def health_check():
    return {"status": "ok"}


app.include_router(webhooks_router)
app.include_router(dispatch_router)
app.include_router(runs_router)

if __name__ == "__main__":
    uvicorn.run("main:app", host="127.0.0.1", port=8000)
