from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from itinerary_engine.api.routes import dashboard, itineraries, jobs, tasks
from itinerary_engine.config import get_settings
from itinerary_engine.core.exceptions import EXCEPTION_HANDLERS
from itinerary_engine.core.json import DecimalJSONResponse
from itinerary_engine.core.lifespan import lifespan
from itinerary_engine.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware

settings = get_settings()

app = FastAPI(default_response_class=DecimalJSONResponse, lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

app.add_middleware(CORSMiddleware, allow_origins=settings.allowed_origins, allow_credentials=True, allow_methods=["GET", "POST", "PATCH", "OPTIONS"], allow_headers=["content-type", "authorization"], expose_headers=["content-length"])

for exception_type, handler in EXCEPTION_HANDLERS:
  app.add_exception_handler(exception_type, handler)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(jobs.router, prefix="/api", tags=["jobs"])
app.include_router(dashboard.router, prefix="/api/content", tags=["dashboard"])
app.include_router(itineraries.router, prefix="/api/itineraries", tags=["itineraries"])
app.include_router(tasks.router, prefix="/internal", tags=["tasks"])
