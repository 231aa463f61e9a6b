from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from studyforge import __version__
from studyforge.api.routes import jobs, tasks, taxonomy
from studyforge.config import get_settings
from studyforge.core.exceptions import register_exception_handlers
from studyforge.core.lifespan import lifespan

settings = get_settings()

app = FastAPI(title="StudyForge Engine", version=__version__, lifespan=lifespan)

app.add_middleware(
  CORSMiddleware,
  allow_origins=list(settings.allowed_origins),
  allow_credentials=True,
  allow_methods=["GET", "POST", "PUT", "OPTIONS"],
  allow_headers=["content-type", "authorization", "x-operator-id"],
)

register_exception_handlers(app)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": __version__}


app.include_router(jobs.router, prefix="/v1/ingest", tags=["ingest"])
app.include_router(taxonomy.router, prefix="/v1/taxonomy", tags=["taxonomy"])
app.include_router(tasks.router, prefix="/internal", tags=["tasks"])
