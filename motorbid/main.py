from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from starlette.middleware.sessions import SessionMiddleware

from motorbid.db import Base, engine
import motorbid.models  # noqa: F401 ensure models are imported so tables are known
from motorbid.api.routes import router as api_router
from motorbid.config import SCHEDULER_ENABLED, SECRET_KEY, SECURE_COOKIES, VERIFICATION_MAX_AGE
from motorbid.errors import MarketError, UpstreamUnavailable
from motorbid.scheduler import start_scheduler, stop_scheduler
from motorbid.utils import logger

# create FastAPI instance
app = FastAPI(title="motorbid")

# signed session cookie; carries the short-lived identity verification marker
app.add_middleware(
    SessionMiddleware,
    secret_key=SECRET_KEY,
    max_age=VERIFICATION_MAX_AGE,
    https_only=SECURE_COOKIES,
)

app.include_router(api_router)


@app.exception_handler(MarketError)
async def market_error_handler(request: Request, exc: MarketError):
    if exc.status_code >= 500:
        logger.warning("%s %s -> %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# reads run outside crud.transaction(), so a lost database surfaces here
@app.exception_handler(OperationalError)
async def database_error_handler(request: Request, exc: OperationalError):
    return await market_error_handler(request, UpstreamUnavailable("database", str(exc.orig)))


@app.on_event("startup")
def on_startup():
    # Ensure database tables are created on startup
    Base.metadata.create_all(bind=engine)
    if SCHEDULER_ENABLED:
        start_scheduler()


@app.on_event("shutdown")
def on_shutdown():
    stop_scheduler()
