# backend/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from config import settings
from database import init_db
from exceptions import DomainError

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Router imports
from routes.products import router as products_router
from routes.variants import router as variants_router
from routes.composites import router as composites_router
from routes.stock import router as stock_router
from routes.sales import router as sales_router
from routes.public import router as public_router
from routes.logs import router as logs_router

# Initialisation
init_db()

app = FastAPI(title="Jewelry Back Office API", version="1.0.0")

# CORS configuration: local dev servers plus the deployed frontend, if any
origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173"
]

if settings.FRONTEND_URL:
    origins.append(settings.FRONTEND_URL)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    # Store failures that escaped a service; surfaced as-is, never retried here
    logger.error("%s %s store error: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=502, content={"detail": f"Data store error: {exc}"})


# Router registration
app.include_router(products_router)
app.include_router(variants_router)
app.include_router(composites_router)
app.include_router(sales_router)
app.include_router(public_router)
app.include_router(logs_router)

# Stock ledger
app.include_router(stock_router, prefix="/stock")

@app.get("/")
def read_root():
    return {"message": "Jewelry Back Office API is running"}
