from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from loguru import logger

from app.api.v1 import index
from app.api.v1 import user
from app.api.v1 import batch
from app.api.v1 import credential
from app.api.v1 import verification
from app.api.v1 import audit

from app.core.config import settings
from app.core.errors import ErrorCode
from app.core.logging import setup_logging
from app.db.core import init_db

setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info(f"{settings.app_name} started, public URL {settings.public_url}")
    yield


app = FastAPI(title=settings.app_name, lifespan=lifespan)

# Middlewares
origins = []

if settings.allowed_hosts:
    origins = settings.allowed_hosts.split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": {
                "code": ErrorCode.VALIDATION_ERROR.value,
                "message": "Invalid request payload",
                "errors": jsonable_encoder(exc.errors()),
            }
        },
    )


# Register routes
app.include_router(index.router, prefix="/api/v1")
app.include_router(user.router, prefix="/api/v1/users", tags=["Users"])
app.include_router(batch.router, prefix="/api/v1/batches", tags=["Batches"])
app.include_router(credential.router,
                   prefix="/api/v1/credentials", tags=["Credentials"])
app.include_router(verification.router,
                   prefix="/api/v1/verify", tags=["Verification"])
app.include_router(audit.router, prefix="/api/v1/audit", tags=["Audit"])
app.include_router(verification.public_router)

# Static files serving (uploaded batch documents)
app.mount("/static", StaticFiles(directory=settings.static_dir), name="static")

if __name__ == "__main__":
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_config=None,
        log_level=None,
    )
