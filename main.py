"""
tagledger - FastAPI Backend

Learned transaction tagging rules for the finance importer.

Run Instructions:
-----------------
1. Install dependencies:
   pip install -e ".[postgres]"

2. Run the app locally with uvicorn:
   uvicorn main:app --host 0.0.0.0 --port 8000 --reload

3. Test /health endpoint:
   curl http://localhost:8000/health

4. Teach a pattern and look it up:
   curl -X POST http://localhost:8000/corrections \
     -H "Content-Type: application/json" \
     -d '{"pattern": "WOOLWORTHS 1234", "match_type": "contains", "tags": ["Groceries"]}'
   curl -X POST http://localhost:8000/corrections/find-match \
     -H "Content-Type: application/json" \
     -d '{"description": "WOOLWORTHS SUPERMARKETS AU", "min_confidence": 0}'
"""
import time

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from tagledger import __version__
from tagledger.api import corrections_router
from tagledger.services.errors import TagledgerError
from tagledger.services.logging import log_error, log_request
from tagledger.services.metrics import get_metrics, record_error, record_request

app = FastAPI(
    title="tagledger API",
    description="""
    tagledger API - Learned Transaction Tagging

    Maps noisy bank transaction descriptions to tags using rules learned
    from user corrections.

    ## Corrections
    - Teach a pattern (`exact` or `contains`); re-teaching reinforces it
    - Find the best rule for a description during import
    - Accept/override feedback adjusts confidence; rules below 0.3 are pruned
    - Propose new rules for a batch of transactions with Claude
    """,
    version=__version__,
)

app.include_router(corrections_router)


# Add request logging middleware
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log requests and record metrics."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        client_id = request.client.host if request.client else "unknown"

        try:
            response = await call_next(request)
            duration_ms = (time.time() - start_time) * 1000

            log_request(
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=duration_ms,
                client_id=client_id
            )
            record_request(request.method, request.url.path, response.status_code, duration_ms)

            if response.status_code >= 400:
                record_error(f"http_{response.status_code}", request.url.path)

            return response
        except Exception as e:
            record_error("exception", request.url.path)
            log_error("request_exception", str(e), {"path": request.url.path, "method": request.method})
            raise


app.add_middleware(RequestLoggingMiddleware)


# Global exception handler for TagledgerErrors
@app.exception_handler(TagledgerError)
async def tagledger_exception_handler(request: Request, exc: TagledgerError):
    """Handle all TagledgerErrors with structured responses."""
    log_error(exc.code.value, str(exc), {"path": str(request.url.path), **exc.context})
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


# Global exception handler for unhandled exceptions
@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Handle unhandled exceptions (storage failures included) with a structured response."""
    log_error(
        "unhandled_exception",
        str(exc),
        {"path": str(request.url.path), "method": request.method},
        exception=exc,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": "An unexpected error occurred. Please try again.",
        }
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health():
    return {"status": "healthy", "version": __version__}


@app.get("/metrics")
async def metrics():
    return get_metrics()

