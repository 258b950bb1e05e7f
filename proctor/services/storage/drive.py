"""
Google Drive object store.

Uses ``google-api-python-client`` with a service account. The client library
is synchronous, so every call runs in a worker thread via
``asyncio.to_thread``; each thread builds its own Drive service because the
underlying HTTP transport is not thread-safe.
"""

import asyncio
import io
import logging
import threading
from pathlib import Path

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaFileUpload, MediaIoBaseDownload, MediaIoBaseUpload

from proctor.core.config import Settings, get_settings
from proctor.core.exceptions import StorageError
from proctor.services.storage.base import BaseObjectStore, StoredFile

logger = logging.getLogger(__name__)

DRIVE_SCOPES = ["https://www.googleapis.com/auth/drive"]
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
_FILE_FIELDS = "id, name, mimeType, createdTime, webViewLink, parents"


def build_credentials(settings: Settings, scopes: list[str]) -> service_account.Credentials:
    """Build service-account credentials from the ``google_*`` settings."""
    info = {
        "type": "service_account",
        "project_id": settings.google_project_id,
        "private_key_id": settings.google_private_key_id,
        # .env files usually carry the PEM with escaped newlines
        "private_key": settings.google_private_key.replace("\\n", "\n"),
        "client_email": settings.google_client_email,
        "client_id": settings.google_client_id,
        "token_uri": "https://oauth2.googleapis.com/token",
    }
    return service_account.Credentials.from_service_account_info(info, scopes=scopes)


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def build_query(
    name_contains: list[str] | tuple[str, ...] = (),
    parent_id: str | None = None,
    mime_type: str | None = None,
) -> str:
    """Compose a Drive ``files.list`` query string."""
    clauses = []
    if parent_id:
        clauses.append(f"'{_quote(parent_id)}' in parents")
    for part in name_contains:
        clauses.append(f"name contains '{_quote(part)}'")
    if mime_type:
        clauses.append(f"mimeType='{_quote(mime_type)}'")
    clauses.append("trashed = false")
    return " and ".join(clauses)


def _to_stored(item: dict) -> StoredFile:
    parents = item.get("parents") or [""]
    return StoredFile(
        id=item["id"],
        name=item.get("name", ""),
        mime_type=item.get("mimeType", ""),
        created_time=item.get("createdTime", ""),
        web_view_link=item.get("webViewLink", ""),
        parent_id=parents[0],
    )


class DriveStorage(BaseObjectStore):
    """Google Drive implementation of ``BaseObjectStore``."""

    def __init__(
        self,
        settings: Settings | None = None,
        credentials: service_account.Credentials | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._root = settings.google_drive_folder_id
        self._credentials = credentials or build_credentials(settings, DRIVE_SCOPES)
        self._local = threading.local()

    @property
    def root_folder_id(self) -> str:
        return self._root

    def _service(self):
        service = getattr(self._local, "service", None)
        if service is None:
            service = build("drive", "v3", credentials=self._credentials, cache_discovery=False)
            self._local.service = service
        return service

    async def _call(self, what: str, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except HttpError as exc:
            logger.error("Drive %s failed: %s", what, exc)
            raise StorageError(f"Drive {what} failed: {exc.reason}") from exc
        except OSError as exc:
            logger.error("Drive %s failed: %s", what, exc)
            raise StorageError(f"Drive {what} failed: {exc}") from exc

    # -- folders --

    async def find_folder(self, name: str, parent_id: str | None = None) -> str | None:
        parent = parent_id or self._root
        query = f"name = '{_quote(name)}' and " + build_query(
            parent_id=parent, mime_type=FOLDER_MIME_TYPE
        )

        def _find():
            resp = self._service().files().list(q=query, fields="files(id, name)", spaces="drive").execute()
            files = resp.get("files", [])
            return files[0]["id"] if files else None

        return await self._call("folder lookup", _find)

    async def ensure_folder(self, name: str, parent_id: str | None = None) -> str:
        existing = await self.find_folder(name, parent_id)
        if existing:
            return existing

        body = {"name": name, "mimeType": FOLDER_MIME_TYPE, "parents": [parent_id or self._root]}

        def _create():
            return self._service().files().create(body=body, fields="id").execute()["id"]

        folder_id = await self._call("folder create", _create)
        logger.info("Created Drive folder %s (%s)", name, folder_id)
        return folder_id

    # -- listing --

    async def find_files(
        self,
        name_contains: list[str] | tuple[str, ...] = (),
        parent_id: str | None = None,
        mime_type: str | None = None,
    ) -> list[StoredFile]:
        query = build_query(name_contains, parent_id, mime_type)

        def _list():
            items: list[dict] = []
            page_token = None
            while True:
                resp = (
                    self._service()
                    .files()
                    .list(
                        q=query,
                        fields=f"nextPageToken, files({_FILE_FIELDS})",
                        orderBy="createdTime",
                        spaces="drive",
                        pageToken=page_token,
                    )
                    .execute()
                )
                items.extend(resp.get("files", []))
                page_token = resp.get("nextPageToken")
                if not page_token:
                    return items

        return [_to_stored(item) for item in await self._call("list", _list)]

    # -- upload --

    async def upload_file(self, path: Path, name: str, parent_id: str, mime_type: str) -> StoredFile:
        media = MediaFileUpload(str(path), mimetype=mime_type, resumable=True)
        return await self._create(name, parent_id, media)

    async def upload_bytes(self, data: bytes, name: str, parent_id: str, mime_type: str) -> StoredFile:
        media = MediaIoBaseUpload(io.BytesIO(data), mimetype=mime_type, resumable=False)
        return await self._create(name, parent_id, media)

    async def _create(self, name: str, parent_id: str, media) -> StoredFile:
        body = {"name": name, "parents": [parent_id]}

        def _upload():
            return (
                self._service()
                .files()
                .create(body=body, media_body=media, fields=_FILE_FIELDS)
                .execute()
            )

        stored = _to_stored(await self._call("upload", _upload))
        logger.info("Uploaded %s to Drive (%s)", stored.name, stored.id)
        return stored

    # -- download --

    async def download_file(self, file_id: str, dest: Path) -> Path:
        dest.parent.mkdir(parents=True, exist_ok=True)

        def _download():
            request = self._service().files().get_media(fileId=file_id)
            with open(dest, "wb") as fh:
                downloader = MediaIoBaseDownload(fh, request)
                done = False
                while not done:
                    _, done = downloader.next_chunk()
            return dest

        return await self._call("download", _download)

    async def download_bytes(self, file_id: str) -> bytes:
        def _download():
            return self._service().files().get_media(fileId=file_id).execute()

        return await self._call("download", _download)

    # -- delete --

    async def delete_file(self, file_id: str) -> None:
        def _delete():
            self._service().files().delete(fileId=file_id).execute()

        await self._call("delete", _delete)
        logger.info("Deleted Drive file %s", file_id)
