from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from money_manager.core.config import settings
from money_manager.core.errors import (
    AlreadyExistsError,
    InsufficientFundsError,
    IntegrityFaultError,
    InvalidDebtStateError,
    LedgerError,
    LedgerTimeoutError,
    NotFoundError,
    StorageError,
)
from money_manager.core.logging_config import configure_logging
from money_manager.db.mongo import connect_to_mongo, close_mongo_connection
from money_manager.api.v1.api import api_router

# Most specific first; anything else is a 500
ERROR_STATUS = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InsufficientFundsError, status.HTTP_409_CONFLICT),
    (AlreadyExistsError, status.HTTP_409_CONFLICT),
    (InvalidDebtStateError, status.HTTP_409_CONFLICT),
    (LedgerTimeoutError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (StorageError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (IntegrityFaultError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_for(exc: LedgerError) -> int:
    for error_class, code in ERROR_STATUS:
        if isinstance(exc, error_class):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@asynccontextmanager
async def lifespan(app: FastAPI):
    await connect_to_mongo()
    yield
    await close_mongo_connection()


configure_logging()

app = FastAPI(
    title=settings.PROJECT_NAME,
    description=settings.DESCRIPTION,
    version=settings.PROJECT_VERSION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    return JSONResponse(status_code=status_for(exc), content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def command_validation_handler(request: Request, exc: ValidationError):
    # Engine commands built from a valid payload can still be rejected
    return JSONResponse(
        status_code=422,
        content={"detail": exc.errors(include_url=False, include_context=False)}
    )


@app.get("/")
async def root():
    return {"message": "Welcome to Money Manager API"}

@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "money-manager"}

app.include_router(api_router, prefix=settings.API_V1_STR)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
