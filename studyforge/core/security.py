from __future__ import annotations

import logging
import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from studyforge.config import Settings, get_settings

logger = logging.getLogger(__name__)

security_scheme = HTTPBearer(auto_error=False)


def require_operator(
  settings: Annotated[Settings, Depends(get_settings)],
  token: Annotated[HTTPAuthorizationCredentials | None, Depends(security_scheme)],
) -> None:
  """Allow the call only with the configured operator bearer token."""
  if not settings.operator_token:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Operator authentication is not configured.")
  supplied = token.credentials if token is not None else ""
  if not secrets.compare_digest(supplied, settings.operator_token):
    logger.warning("Rejected operator request with missing or invalid token")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid operator credentials", headers={"WWW-Authenticate": "Bearer"})


def get_operator_id(x_operator_id: Annotated[str | None, Header()] = None) -> str:
  """Return the operator identity recorded as approver."""
  operator_id = (x_operator_id or "").strip()
  if not operator_id:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="x-operator-id header is required.")
  return operator_id


def verify_task_secret(settings: Settings, *, authorization: str | None) -> None:
  """Reject internal task calls that do not carry the shared task secret."""
  if not settings.task_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Task authentication is not configured.")
  if not secrets.compare_digest(authorization or "", f"Bearer {settings.task_secret}"):
    logger.warning("Unauthorized access attempt to /process-job")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid task secret.")
