from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .errors import NotFoundError, PreconditionFailed, ProviderError
from .logging_config import setup_logging
from .routers import (
    account_caps,
    contacts,
    exports,
    imports,
    priority,
    queue,
    submissions,
    suppression,
    uploads,
    validation_jobs,
)

setup_logging()

app = FastAPI(title=settings.APP_NAME)

# ---------------------------------------------------
# CORS
# ---------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------
# Domain errors -> HTTP
# ---------------------------------------------------
@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(PreconditionFailed)
async def precondition_handler(request: Request, exc: PreconditionFailed):
    return JSONResponse(status_code=409, content={"detail": exc.message, "details": exc.details})


@app.exception_handler(ProviderError)
async def provider_error_handler(request: Request, exc: ProviderError):
    return JSONResponse(status_code=502, content={"detail": str(exc)})


# ---------------------------------------------------
# Health check
# ---------------------------------------------------
@app.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}


# ---------------------------------------------------
# Routers
# ---------------------------------------------------
app.include_router(uploads.router, prefix="/campaigns", tags=["uploads"])
app.include_router(contacts.router, prefix="/campaigns", tags=["contacts"])
app.include_router(queue.router, prefix="/campaigns", tags=["queue"])
app.include_router(submissions.router, prefix="/contacts", tags=["submissions"])
app.include_router(suppression.router, prefix="/campaigns", tags=["suppression"])
app.include_router(suppression.global_router, prefix="/suppression", tags=["suppression"])
app.include_router(validation_jobs.router, prefix="/campaigns", tags=["email-validation"])
app.include_router(validation_jobs.job_router, prefix="/email-validation-jobs", tags=["email-validation"])
app.include_router(account_caps.router, prefix="/campaigns", tags=["account-caps"])
app.include_router(priority.router, prefix="/campaigns", tags=["priority"])
app.include_router(exports.router, prefix="/campaigns", tags=["exports"])
app.include_router(imports.router, prefix="/campaigns", tags=["imports"])
