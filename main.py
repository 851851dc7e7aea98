import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tarification.models.errors import NotFoundError, StorageError, ValidationError
from tarification.routes import catalog, health, pricing
from tarification.services.tarification_service import get_tarification_service

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: optionally load the bundled default catalog
    provider = app.dependency_overrides.get(get_tarification_service, get_tarification_service)
    tarification_service = provider()
    if tarification_service.tarification_config["SEED_ON_STARTUP"]:
        tarification_service.seeder.seed()
    yield
    # Shutdown
    tarification_service.storage_service.close()


app = FastAPI(
    title="Tarification API",
    description="Prices motor insurance guarantees and packages from the catalog and tariff grids",
    version="0.1.0",
    lifespan=lifespan
)
# Configure CORS
origins = [
    "http://localhost:8001",
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_error_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error(f"Catalog store failure on {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": "Catalog store unavailable"})


API_PREFIX = "/tarification"
app.include_router(health.router, prefix=API_PREFIX, tags=["Tarification Health"])
app.include_router(pricing.router, prefix=API_PREFIX, tags=["Pricing"])
app.include_router(catalog.router, prefix=API_PREFIX, tags=["Catalog"])


@app.get("/tarification")
async def root():
    return {"message": "Welcome to the Tarification API"}


# Main entry point for running the FastAPI server
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8002, reload=True)
