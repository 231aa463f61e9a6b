"""Object storage access for uploaded source artifacts."""

from __future__ import annotations

import os
from dataclasses import dataclass
from urllib.parse import urlparse, urlunparse

from google.api_core.exceptions import NotFound
from google.auth.credentials import AnonymousCredentials
from google.cloud import storage
from starlette.concurrency import run_in_threadpool

from studyforge.config import Settings


@dataclass(frozen=True)
class StorageObjectMetadata:
  content_type: str | None
  size: int


def upload_object_path(user_id: str, file_name: str) -> str:
  """Return the object path operators upload an artifact to before registering it."""
  return f"uploads/{user_id}/{file_name}"


def _build_gcs_client(settings: Settings) -> storage.Client:
  if not settings.gcs_storage_host:
    return storage.Client(project=settings.gcp_project_id)
  endpoint = _normalize_emulator_endpoint(settings.gcs_storage_host)
  # The SDK reads the emulator host from the environment for media requests.
  os.environ["STORAGE_EMULATOR_HOST"] = endpoint
  return storage.Client(project=settings.gcp_project_id or "local-dev", credentials=AnonymousCredentials(), client_options={"api_endpoint": endpoint})


class StorageClient:
  """Reads uploaded artifacts from the upload bucket."""

  def __init__(self, settings: Settings, *, client: storage.Client | None = None) -> None:
    self.bucket_name = settings.upload_bucket
    self._emulated = bool(settings.gcs_storage_host)
    self._client = client or _build_gcs_client(settings)
    self._bucket = self._client.bucket(self.bucket_name)

  async def ensure_bucket(self) -> None:
    """Create the upload bucket when running against the emulator."""
    if not self._emulated:
      return

    def _create_if_missing() -> None:
      if not self._bucket.exists(client=self._client):
        self._client.create_bucket(self._bucket)

    await run_in_threadpool(_create_if_missing)

  async def download(self, object_name: str) -> tuple[bytes, StorageObjectMetadata]:
    """Fetch an artifact's bytes; a missing object raises FileNotFoundError."""
    blob = self._bucket.blob(object_name)
    try:
      data = await run_in_threadpool(blob.download_as_bytes)
    except NotFound as exc:
      raise FileNotFoundError(f"gs://{self.bucket_name}/{object_name}") from exc
    return data, StorageObjectMetadata(content_type=blob.content_type, size=len(data))


def build_storage_client(settings: Settings) -> StorageClient:
  return StorageClient(settings)


def _normalize_emulator_endpoint(raw_endpoint: str) -> str:
  """Reduce an emulator URL to scheme, host and port."""
  parsed = urlparse(raw_endpoint)
  if not parsed.scheme or not parsed.netloc:
    return raw_endpoint.rstrip("/")
  return urlunparse((parsed.scheme, parsed.netloc, "", "", "", "")).rstrip("/")
