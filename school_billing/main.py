"""School Billing - FastAPI entrypoint."""
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import PyMongoError, ServerSelectionTimeoutError

from school_billing.config import settings
from school_billing.db import db_shutdown, init_db
from school_billing.errors import BillingError
from school_billing.seed import seed_admin
from school_billing.services.roles import ensure_default_roles
from school_billing.api import auth, charges, contracts, enrollments
from school_billing.api.deps import require_module_permission

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await init_db()
        await ensure_default_roles()
        await seed_admin()
    except ServerSelectionTimeoutError as e:
        logger.error("MongoDB is not reachable at %s", settings.mongodb_url)
        raise RuntimeError("MongoDB connection failed. Start MongoDB (e.g. docker compose up -d).") from e
    yield
    await db_shutdown()


app = FastAPI(
    title=settings.app_name,
    description="Enrollment billing, late fees and contract lifecycle",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": errors},
    )


@app.exception_handler(BillingError)
async def billing_exception_handler(request: Request, exc: BillingError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "detail": "Internal server error", "code": exc.code},
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(PyMongoError)
async def storage_exception_handler(request: Request, exc: PyMongoError):
    logger.exception("Storage error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "detail": "Internal server error", "code": "internal_error"},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API routes
app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
app.include_router(enrollments.router, prefix="/api/enrollments", tags=["Enrollments"], dependencies=[Depends(require_module_permission("enrollments"))])
app.include_router(charges.router, prefix="/api/charges", tags=["Charges"], dependencies=[Depends(require_module_permission("charges"))])
app.include_router(contracts.router, prefix="/api/contracts", tags=["Contracts"], dependencies=[Depends(require_module_permission("contracts"))])


@app.get("/health")
def health():
    return {"status": "ok", "app": settings.app_name}
