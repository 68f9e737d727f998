import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import get_settings
from .database import close_mongo_connection, connect_to_mongo, init_db
from .jobs import TokenCleanupJob
from .routers import (
    auth,
    catalog,
    collector_management,
    government,
    point_conversions,
    profiles,
    salary_transactions,
    storages,
    users,
    waste_drop_requests,
    waste_transfer_requests,
)

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


app = FastAPI(title="WasteTrack API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

cleanup_job = TokenCleanupJob(settings)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"errors": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    messages = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{field}: {error.get('msg')}" if field else error.get("msg"))
    return JSONResponse(status_code=400, content={"errors": "; ".join(messages)})


@app.on_event("startup")
async def on_startup():
    await connect_to_mongo(settings)
    await init_db()
    cleanup_job.start()
    logger.info("WasteTrack API started")


@app.on_event("shutdown")
async def on_shutdown():
    await cleanup_job.stop()
    await close_mongo_connection()


@app.get("/health")
async def health():
    return {"data": {"status": "ok"}}


app.include_router(auth.router)
app.include_router(users.router)
app.include_router(profiles.router)
app.include_router(salary_transactions.router)
app.include_router(point_conversions.router)
app.include_router(collector_management.router)
app.include_router(catalog.router)
app.include_router(storages.router)
app.include_router(waste_drop_requests.router)
app.include_router(waste_transfer_requests.router)
app.include_router(government.router)
