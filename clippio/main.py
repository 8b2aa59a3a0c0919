import time
import logging
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI

load_dotenv()

from . import config, metrics
from .auth_middleware import DelegateAuthMiddleware
from .pipeline.routes import delegate_router

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Clippio worker starting up...")
    metrics.set_gauge("start_time", time.time())
    if not config.get_replicate_token():
        logger.warning("REPLICATE_API_TOKEN is not set; /clippio/delegate will return 500")
    yield
    logger.info("Clippio worker shutting down...")


app = FastAPI(title="Clippio delegate worker", lifespan=lifespan)
app.add_middleware(DelegateAuthMiddleware)
app.include_router(delegate_router)


@app.get("/health")
def health_check():
    """Verify worker is running and the Replicate token is configured."""
    token = config.get_replicate_token()
    return {
        "status": "ok",
        "replicate_token_set": bool(token),
        "replicate_api_base": config.REPLICATE_API_BASE,
        "environment": config.ENVIRONMENT,
    }


@app.get("/metrics")
def metrics_endpoint():
    """Return a snapshot of all worker metrics."""
    return metrics.get_snapshot()


if __name__ == "__main__":
    uvicorn.run("clippio.main:app", host="0.0.0.0", port=config.PORT)
