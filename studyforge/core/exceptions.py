import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from studyforge.pipeline.errors import (
  CommitIntegrityError,
  ExternalServiceError,
  InvalidInputError,
  MalformedOutputError,
  NotFoundError,
  PipelineError,
  PreconditionError,
  ServiceUnavailableError,
)


def _coerce_json_safe(value: Any) -> Any:
  """Convert unsupported values into JSON-safe primitives for error responses."""
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): _coerce_json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_coerce_json_safe(item) for item in value]
  if isinstance(value, BaseException):
    error_message = str(value)
    if error_message:
      return f"{type(value).__name__}: {error_message}"
    return type(value).__name__
  return str(value)


def _error_payload(detail: Any, *, error: str | None = None, **extra: Any) -> dict[str, Any]:
  """Build an error body with an optional machine-readable code."""
  payload: dict[str, Any] = {"detail": _coerce_json_safe(detail)}
  if error:
    payload["error"] = error
  payload.update({key: _coerce_json_safe(value) for key, value in extra.items() if value is not None})
  return payload


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key != "input"}
    if "ctx" in scrubbed and isinstance(scrubbed["ctx"], dict):
      scrubbed_ctx = dict(scrubbed["ctx"])
      scrubbed_ctx.pop("input", None)
      scrubbed["ctx"] = scrubbed_ctx
    sanitized.append(_coerce_json_safe(scrubbed))
  return sanitized


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  """Catch unhandled errors without leaking internals."""
  logger = logging.getLogger("uvicorn.error")
  logger.error("Global exception path=%s error_type=%s", request.url.path, type(exc).__name__, exc_info=True)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error"))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  """Log request validation errors without the request body."""
  sanitized_errors = _sanitize_validation_errors(exc.errors())
  logger = logging.getLogger("uvicorn.error")
  logger.warning("Request validation failed path=%s method=%s errors=%s", request.url.path, request.method, sanitized_errors)
  return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=_error_payload(sanitized_errors))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
  """Keep 4xx details, hide 5xx details."""
  if exc.status_code >= 500:
    logger = logging.getLogger("uvicorn.error")
    logger.error("HTTPException path=%s status_code=%s detail=%s", request.url.path, exc.status_code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=_error_payload("Internal Server Error"))
  return JSONResponse(status_code=exc.status_code, content=_error_payload(exc.detail), headers=getattr(exc, "headers", None))


async def pipeline_exception_handler(request: Request, exc: PipelineError) -> JSONResponse:
  """Map typed pipeline failures onto HTTP statuses."""
  logger = logging.getLogger("uvicorn.error")
  if isinstance(exc, InvalidInputError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=_error_payload(str(exc), error="INVALID_INPUT"))
  if isinstance(exc, NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=_error_payload(str(exc), error="NOT_FOUND"))
  if isinstance(exc, PreconditionError):
    logger.warning("Precondition failed path=%s job=%s actual=%s", request.url.path, exc.job_id, exc.actual)
    body = _error_payload(str(exc), error="PRECONDITION_FAILED", jobId=exc.job_id, currentStatus=exc.actual, expectedStatuses=list(exc.expected))
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=body)
  if isinstance(exc, MalformedOutputError):
    logger.warning("Malformed model output path=%s: %s", request.url.path, exc)
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content=_error_payload(str(exc), error="MALFORMED_OUTPUT"))
  if isinstance(exc, ServiceUnavailableError | ExternalServiceError):
    logger.warning("External service failure path=%s: %s", request.url.path, exc)
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=_error_payload(str(exc), error="SERVICE_UNAVAILABLE"))
  if isinstance(exc, CommitIntegrityError):
    logger.error("Commit integrity failure path=%s", request.url.path, exc_info=exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Commit failed and was rolled back.", error="COMMIT_FAILED"))
  logger.error("Unmapped pipeline error path=%s error_type=%s", request.url.path, type(exc).__name__, exc_info=exc)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error"))


def register_exception_handlers(app: FastAPI) -> None:
  app.add_exception_handler(PipelineError, pipeline_exception_handler)  # type: ignore[arg-type]
  app.add_exception_handler(RequestValidationError, request_validation_exception_handler)  # type: ignore[arg-type]
  app.add_exception_handler(HTTPException, http_exception_handler)  # type: ignore[arg-type]
  app.add_exception_handler(Exception, global_exception_handler)
