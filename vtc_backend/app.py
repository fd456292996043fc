import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .database import SessionLocal, engine, init_db, utcnow
from .admissions_module.routes import router as admissions_router
from .assessment_module.routes import router as assessment_router
from .finance_module.routes import router as finance_router
from .hostel_module.routes import functions_router as hostel_functions_router
from .hostel_module.routes import router as hostel_router
from .inventory_module.routes import router as inventory_router
from .procurement_module.routes import router as procurement_router
from .rbac_module.routes import router as rbac_router
from .rbac_module.services import seed_defaults


logger = logging.getLogger(__name__)


def init_application_data() -> None:
    init_db()
    db = SessionLocal()
    try:
        seed_defaults(db)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Initializing database...")
    init_application_data()
    logger.info("Database initialized.")
    yield
    logger.info("Shutting down...")


def _validation_message(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path"))
        messages.append(f"{location}: {error.get('msg')}" if location else error.get("msg", "Invalid request"))
    return "; ".join(messages) or "Invalid request"


def create_app(*, init_on_startup: bool = True) -> FastAPI:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[logging.StreamHandler()],
    )

    app = FastAPI(title="VTC Administration API", lifespan=lifespan if init_on_startup else None)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"success": False, "error": _validation_message(exc)})

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"success": False, "error": str(exc) or "Internal server error"})

    app.include_router(rbac_router)
    app.include_router(admissions_router)
    app.include_router(finance_router)
    app.include_router(hostel_router)
    app.include_router(hostel_functions_router)
    app.include_router(assessment_router)
    app.include_router(inventory_router)
    app.include_router(procurement_router)

    @app.get("/api/health")
    def health_check():
        try:
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            db_status = "connected"
        except Exception as exc:
            logger.error("Health check database error: %s", exc)
            db_status = f"error: {exc}"
        return {
            "status": "healthy",
            "message": "VTC backend is running",
            "database": db_status,
            "timestamp": utcnow().isoformat(),
        }

    return app


app = create_app()
