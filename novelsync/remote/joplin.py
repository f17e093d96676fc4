"""Client for the Joplin Data API (the Web Clipper REST service)."""

import logging
import time
from typing import Any

import requests

from novelsync.config import RemoteConfig
from novelsync.errors import (
    RemoteAuthError,
    RemoteError,
    RemoteNotFound,
    RemoteTransient,
    RemoteUnavailable,
)
from novelsync.remote.base import NoteStore

logger = logging.getLogger(__name__)

PAGE_LIMIT = 100


class JoplinClient(NoteStore):
    """NoteStore backed by a Joplin desktop instance.

    The API token is passed as the ``token`` query parameter on every
    request. Network errors and 5xx responses are retried with exponential
    backoff; 4xx responses are mapped to typed errors and not retried.

    Args:
        config: Remote section of the application config.
        token: Joplin API token.
        session: Optional requests session, mainly for tests.
    """

    def __init__(
        self,
        config: RemoteConfig,
        token: str | None,
        session: requests.Session | None = None,
    ) -> None:
        if not token:
            raise RemoteAuthError("JOPLIN_API_TOKEN is not configured")
        self._config = config
        self._base_url = config.api_url.rstrip("/")
        self._token = token
        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})
        self._tag_ids: dict[str, str] = {}
        self._tags_loaded = False

    @property
    def api_url(self) -> str:
        return self._base_url

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        url = f"{self._base_url}{endpoint}"
        query = {"token": self._token, **(params or {})}
        max_attempts = max(1, self._config.max_retries)
        last_error: RemoteError | None = None

        for attempt in range(max_attempts):
            try:
                response = self._session.request(
                    method,
                    url,
                    params=query,
                    json=json,
                    timeout=self._config.request_timeout,
                )
            except requests.exceptions.ConnectionError as exc:
                last_error = RemoteUnavailable(f"Cannot connect to {self._base_url}: {exc}")
            except requests.exceptions.Timeout as exc:
                last_error = RemoteTransient(f"{method} {endpoint} timed out: {exc}")
            else:
                if response.status_code >= 500:
                    last_error = RemoteTransient(
                        f"{method} {endpoint} failed: HTTP {response.status_code}",
                        status_code=response.status_code,
                    )
                else:
                    return self._handle_response(method, endpoint, response)

            logger.warning(
                "Joplin request %s %s failed (attempt %d/%d): %s",
                method,
                endpoint,
                attempt + 1,
                max_attempts,
                last_error,
            )
            if attempt < max_attempts - 1:
                time.sleep(2 ** attempt)

        raise last_error

    def _handle_response(
        self, method: str, endpoint: str, response: requests.Response
    ) -> Any:
        status = response.status_code
        if status in (401, 403):
            raise RemoteAuthError(
                f"{method} {endpoint} rejected: HTTP {status}", status_code=status
            )
        if status == 404:
            raise RemoteNotFound(f"{method} {endpoint}: not found", status_code=404)
        if status >= 400:
            raise RemoteError(
                f"{method} {endpoint} failed: HTTP {status} {response.text[:200]}",
                status_code=status,
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def _list(self, endpoint: str, fields: str) -> list[dict[str, Any]]:
        """Collect every item of a paginated collection."""
        items: list[dict[str, Any]] = []
        page = 1
        while True:
            data = self._request(
                "GET", endpoint, params={"fields": fields, "page": page, "limit": PAGE_LIMIT}
            )
            if not isinstance(data, dict) or not isinstance(data.get("items", []), list):
                raise RemoteError(f"GET {endpoint} returned an unexpected payload: {data!r:.200}")
            items.extend(data.get("items", []))
            if not data.get("has_more"):
                return items
            page += 1

    @staticmethod
    def _created_id(created: Any, endpoint: str) -> str:
        """Id of a newly created item; a response without one is a remote error."""
        if isinstance(created, dict) and created.get("id"):
            return created["id"]
        raise RemoteError(f"POST {endpoint} response has no id: {created!r:.200}")

    # ------------------------------------------------------------------
    # NoteStore
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        try:
            self._request("GET", "/ping")
            self._list("/folders", "id")
        except RemoteAuthError:
            raise
        except RemoteError as exc:
            logger.warning("Joplin ping failed: %s", exc)
            return False
        return True

    def find_or_create_folder(self, title: str, parent_id: str | None = None) -> str:
        """Return the id of the folder with this title under ``parent_id``."""
        for folder in self._list("/folders", "id,title,parent_id"):
            if folder.get("title") == title and (folder.get("parent_id") or None) == parent_id:
                return folder["id"]

        payload: dict[str, Any] = {"title": title}
        if parent_id:
            payload["parent_id"] = parent_id
        created = self._request("POST", "/folders", json=payload)
        logger.info("Created Joplin folder %r (parent %s)", title, parent_id or "-")
        return self._created_id(created, "/folders")

    def ensure_container_path(self, names: list[str]) -> str:
        if not names:
            raise ValueError("Container path must not be empty")
        parent_id: str | None = None
        for name in names:
            parent_id = self.find_or_create_folder(name, parent_id)
        return parent_id

    def ensure_recycle_container(self) -> str:
        return self.find_or_create_folder(self._config.recycle_folder)

    def find_or_create_tag(self, title: str) -> str:
        """Return the id of a tag, creating it if necessary.

        Joplin stores tag titles lowercased, so matching is case-insensitive.
        """
        key = title.lower()
        if key in self._tag_ids:
            return self._tag_ids[key]

        if not self._tags_loaded:
            for tag in self._list("/tags", "id,title"):
                self._tag_ids.setdefault(str(tag.get("title", "")).lower(), tag["id"])
            self._tags_loaded = True
        if key not in self._tag_ids:
            created = self._request("POST", "/tags", json={"title": title})
            self._tag_ids[key] = self._created_id(created, "/tags")
        return self._tag_ids[key]

    def create_note(
        self, title: str, body: str, container_id: str, tags: list[str] | None = None
    ) -> str:
        created = self._request(
            "POST", "/notes", json={"title": title, "body": body, "parent_id": container_id}
        )
        note_id = self._created_id(created, "/notes")

        for tag in tags or []:
            try:
                tag_id = self.find_or_create_tag(tag)
                self._request("POST", f"/tags/{tag_id}/notes", json={"id": note_id})
            except RemoteAuthError:
                raise
            except RemoteError as exc:
                logger.warning("Could not tag note %s with %r: %s", note_id, tag, exc)
        return note_id

    def update_note(
        self,
        note_id: str,
        title: str | None = None,
        body: str | None = None,
        container_id: str | None = None,
    ) -> None:
        payload: dict[str, Any] = {}
        if title is not None:
            payload["title"] = title
        if body is not None:
            payload["body"] = body
        if container_id is not None:
            payload["parent_id"] = container_id
        self._request("PUT", f"/notes/{note_id}", json=payload)

    def move_note(self, note_id: str, container_id: str) -> None:
        self._request("PUT", f"/notes/{note_id}", json={"parent_id": container_id})
