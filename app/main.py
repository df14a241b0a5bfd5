from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import courses, graphics
from app.config import get_settings
from app.core.exceptions import global_exception_handler, http_exception_handler, request_validation_exception_handler
from app.core.json import DecimalJSONResponse
from app.core.lifespan import lifespan
from app.core.middleware import RequestLoggingMiddleware

settings = get_settings()

app = FastAPI(title="Course Generation Engine", version="0.1.0", default_response_class=DecimalJSONResponse, lifespan=lifespan)

app.add_middleware(CORSMiddleware, allow_origins=settings.allowed_origins, allow_credentials=True, allow_methods=["GET", "POST", "OPTIONS"], allow_headers=["content-type", "authorization"], expose_headers=["content-length", "x-request-id"])


# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(courses.router, prefix="/v1/courses", tags=["courses"])
app.include_router(graphics.router, prefix="/v1/courses", tags=["graphics"])
