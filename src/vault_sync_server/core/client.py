import logging
import threading
from typing import Any

import requests
from pydantic import BaseModel

from ..config import Config

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = frozenset({408, 429})


class RemoteAPIError(Exception):
    """Error returned by (or while talking to) the remote service.

    Attributes:
        status_code: HTTP status, or ``None`` for connection-level failures.
        message: Response body or transport error text.
    """

    def __init__(self, status_code: int | None, message: str):
        self.status_code = status_code
        self.message = message
        if status_code is None:
            super().__init__(f"Remote API unreachable: {message}")
        else:
            super().__init__(f"Remote API error ({status_code}): {message}")

    @property
    def retryable(self) -> bool:
        """True for rate limiting, server errors and transport failures."""
        if self.status_code is None:
            return True
        return self.status_code in _RETRYABLE_STATUS or self.status_code >= 500


class RemoteRecord(BaseModel):
    """A design element as reported by the remote service."""

    id: int
    name: str
    description: str = ""
    created_at: str
    updated_at: str
    type_id: int | None = None

    model_config = {"frozen": True}

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "RemoteRecord":
        """Build a record from the service's camelCase JSON payload."""
        type_info = data.get("type") or {}
        return cls(
            id=data["designElementId"],
            name=data.get("name", ""),
            description=data.get("description") or "",
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", ""),
            type_id=type_info.get("designElementTypeId"),
        )


class RemoteClient:
    """Blocking REST client for remote design elements.

    One ``requests.Session`` is kept per thread because calls are made
    from worker threads via ``run_sync``.
    """

    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.base_url = config.api_url.rstrip("/")

    @property
    def session(self) -> requests.Session:
        """Return the current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "Authorization": f"ApiKey {self.config.api_key}",
                "Accept": "application/json",
            }
        )
        session.verify = not self.config.insecure
        return session

    def _elements_url(self, container_id: int, record_id: int | None = None) -> str:
        url = f"{self.base_url}/projects/{container_id}/designdocs/elements"
        if record_id is not None:
            url = f"{url}/{record_id}"
        return url

    def _request(
        self,
        method: str,
        url: str,
        payload: dict[str, Any] | None = None,
        allow_not_found: bool = False,
    ) -> requests.Response | None:
        """Send one request and map failures onto ``RemoteAPIError``.

        Returns ``None`` for a 404 when *allow_not_found* is set.
        """
        logger.debug("%s %s", method, url)
        try:
            response = self._get_session().request(
                method,
                url,
                json=payload,
                timeout=(10, 60),
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise RemoteAPIError(None, str(exc)) from exc

        if allow_not_found and response.status_code == 404:
            return None
        if not response.ok:
            raise RemoteAPIError(response.status_code, response.text)
        return response

    def create_record(
        self, container_id: int, request: dict[str, Any]
    ) -> RemoteRecord:
        """
        Create a design element.

        Args:
            container_id: Target project ID
            request: ``{"type_id", "name", "description"}``

        Returns:
            The created record with its new ID and timestamps

        Raises:
            RemoteAPIError: On any non-2xx response or transport failure
        """
        payload = {
            "typeId": request["type_id"],
            "name": request["name"],
            "description": request.get("description", ""),
        }
        response = self._request(
            "POST", self._elements_url(container_id), payload
        )
        return RemoteRecord.from_api(response.json())

    def update_record(
        self, container_id: int, record_id: int, request: dict[str, Any]
    ) -> RemoteRecord:
        """
        Patch name and/or description of a design element.

        Raises:
            RemoteAPIError: On any non-2xx response (404 included)
        """
        payload = {
            key: request[field]
            for field, key in (("name", "name"), ("description", "description"))
            if field in request
        }
        response = self._request(
            "PATCH", self._elements_url(container_id, record_id), payload
        )
        return RemoteRecord.from_api(response.json())

    def get_record(
        self, container_id: int, record_id: int
    ) -> RemoteRecord | None:
        """
        Fetch a design element, or ``None`` if it does not exist.
        """
        response = self._request(
            "GET",
            self._elements_url(container_id, record_id),
            allow_not_found=True,
        )
        if response is None:
            return None
        return RemoteRecord.from_api(response.json())

    def list_records(self, container_id: int) -> list[RemoteRecord]:
        """
        List every design element of a project.

        The service answers either with a bare array or with a paged
        ``{"items": [...]}`` envelope; both are accepted.
        """
        response = self._request("GET", self._elements_url(container_id))
        data = response.json()
        if isinstance(data, dict):
            data = data.get("items") or []
        return [RemoteRecord.from_api(item) for item in data]

    def delete_record(self, container_id: int, record_id: int) -> None:
        """
        Delete a design element.  Deleting a missing element is not an error.
        """
        self._request(
            "DELETE",
            self._elements_url(container_id, record_id),
            allow_not_found=True,
        )
