"""FastAPI application entry point."""
import logging
from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from where2meet.backend.core.config import settings
from where2meet.backend.core.errors import ErrorKind, InvalidInputError, Where2MeetError
from where2meet.backend.core.logging import setup_logging
from where2meet.backend.db.init_db import init_db
from where2meet.backend.db.models import Event, utcnow
from where2meet.backend.db.session import get_db
from where2meet.backend.api import events, votes
from where2meet.backend.services.redaction import RedactionService

logger = logging.getLogger(__name__)

# Setup logging
setup_logging(settings.log_level)

# Initialize database
init_db()

# Create FastAPI app
app = FastAPI(
    title="where2meet API",
    description="Find a fair place to meet: create an event, gather addresses, vote on AI recommendations",
    version="1.0.0"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(events.router, prefix="/api", tags=["events"])
app.include_router(votes.router, prefix="/api", tags=["votes"])


@app.exception_handler(Where2MeetError)
async def where2meet_error_handler(request: Request, exc: Where2MeetError):
    """Render domain errors as the failure envelope."""
    if exc.kind == ErrorKind.GENERATION_FAILED:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Render request validation failures as the failure envelope."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid input")
    error = InvalidInputError(
        message,
        details=[
            {"loc": [str(part) for part in e.get("loc", ())], "msg": e.get("msg")}
            for e in errors
        ]
    )
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Anything else still leaves as an envelope."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": "NETWORK_ERROR",
            "kind": None,
            "message": "Unexpected server error",
            "details": None,
        }
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "where2meet API", "version": "1.0.0"}


@app.get("/health")
async def health(db: Session = Depends(get_db)):
    """Health check endpoint."""
    masked_url = RedactionService().mask_url_credentials(settings.database_url)
    try:
        db.execute(text("SELECT 1"))
        event_count = db.query(Event).count()
    except SQLAlchemyError as e:
        logger.error("Health check failed: %s", e)
        return {
            "status": "degraded",
            "database": "unreachable",
            "event_count": None,
            "database_url": masked_url,
            "timestamp": utcnow().isoformat(),
        }

    return {
        "status": "healthy",
        "database": "connected",
        "event_count": event_count,
        "database_url": masked_url,
        "timestamp": utcnow().isoformat(),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
