import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, APIRouter, Request
from fastapi.responses import JSONResponse

from database import client
from routers import donors, donations, inventory, disposition, requests, reports
from services.errors import BloodBankError

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    client.close()


app = FastAPI(title="Blood Bank Core API", lifespan=lifespan)


@app.exception_handler(BloodBankError)
async def blood_bank_error_handler(request: Request, exc: BloodBankError):
    if exc.status_code >= 409:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


api_router = APIRouter(prefix="/api")
api_router.include_router(donors.router)
api_router.include_router(donations.router)
api_router.include_router(inventory.router)
api_router.include_router(disposition.discard_router)
api_router.include_router(requests.router)
api_router.include_router(requests.transfusion_router)
api_router.include_router(reports.router)


@api_router.get("/")
async def root():
    return {"status": "healthy", "service": "Blood Bank Core API"}


app.include_router(api_router)
