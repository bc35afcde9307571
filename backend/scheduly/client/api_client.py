"""HTTP client for the project API, built on ``requests``.

Any object with a ``requests.Session``-style ``request`` method can be used as
the transport, which is how the tests drive it through FastAPI's TestClient.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from scheduly.core.config import settings

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Non-2xx answer from the API. ``payload`` is the decoded error body."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, payload: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload if payload is not None else {}

    @property
    def conflict(self) -> Optional[Dict[str, Any]]:
        if isinstance(self.payload, dict):
            return self.payload.get("conflict")
        return None

    @property
    def fields(self) -> list[str]:
        if isinstance(self.payload, dict):
            return list(self.payload.get("fields") or [])
        return []


class NetworkError(ApiError):
    """The request never got an HTTP answer."""


def _decode_error(response: Any) -> Any:
    try:
        return response.json()
    except ValueError:
        return {"message": response.text}


class ApiClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        session: Any = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.base_url = (base_url if base_url is not None else f"http://localhost:8000{settings.API_V1_STR}").rstrip("/")
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout or settings.CLIENT_TIMEOUT_SECONDS

    def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        query = {key: value for key, value in (params or {}).items() if value is not None}
        try:
            response = self.session.request(method, url, json=json, params=query or None, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning(f"{method} {url} failed: {exc}")
            raise NetworkError(f"{method} {path} failed: {exc}") from exc

        if response.status_code >= 400:
            payload = _decode_error(response)
            message = payload.get("message") if isinstance(payload, dict) else None
            logger.debug(f"{method} {url} answered {response.status_code}")
            raise ApiError(
                message or f"{method} {path} answered {response.status_code}",
                status_code=response.status_code,
                payload=payload,
            )
        if not response.content:
            return None
        if "json" in response.headers.get("content-type", ""):
            return response.json()
        return response.text

    def _project(self, project_id: str) -> str:
        return f"/projects/{project_id}"

    # Projects

    def create_project(self, meta: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("POST", "/projects", json={"meta": meta})

    def get_snapshot(self, project_id: str) -> Dict[str, Any]:
        return self.request("GET", f"{self._project(project_id)}/snapshot")

    def update_meta(self, project_id: str, meta: Dict[str, Any], version: int) -> Dict[str, Any]:
        return self.request("PUT", f"{self._project(project_id)}/meta", json={"meta": meta, "version": version})

    def get_summary(self, project_id: str) -> Dict[str, Any]:
        return self.request("GET", f"{self._project(project_id)}/summary")

    # Candidates

    def create_candidate(self, project_id: str, candidate: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("POST", f"{self._project(project_id)}/candidates", json=candidate)

    def update_candidate(
        self, project_id: str, candidate_id: str, candidate: Dict[str, Any], version: int
    ) -> Dict[str, Any]:
        return self.request(
            "PUT",
            f"{self._project(project_id)}/candidates/{candidate_id}",
            json={"candidate": candidate, "version": version},
        )

    def remove_candidate(self, project_id: str, candidate_id: str, version: int) -> Dict[str, Any]:
        return self.request(
            "DELETE",
            f"{self._project(project_id)}/candidates/{candidate_id}",
            params={"version": version},
        )

    def export_ics(self, project_id: str, candidate_id: Optional[str] = None) -> str:
        if candidate_id:
            return self.request("GET", f"{self._project(project_id)}/candidates/{candidate_id}/ics")
        return self.request("GET", f"{self._project(project_id)}/candidates/ics")

    def preview_ics_import(self, project_id: str, ics_text: str) -> Dict[str, Any]:
        return self.request("POST", f"{self._project(project_id)}/candidates/ics/preview", json={"ics": ics_text})

    def commit_ics_import(self, project_id: str, entries: list[Dict[str, Any]]) -> Dict[str, Any]:
        return self.request("POST", f"{self._project(project_id)}/candidates/ics/commit", json={"entries": entries})

    # Participants

    def create_participant(self, project_id: str, participant: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("POST", f"{self._project(project_id)}/participants", json=participant)

    def update_participant(
        self, project_id: str, participant_id: str, changes: Dict[str, Any], version: int
    ) -> Dict[str, Any]:
        return self.request(
            "PUT",
            f"{self._project(project_id)}/participants/{participant_id}",
            json={"participant": changes, "version": version},
        )

    def remove_participant(self, project_id: str, participant_id: str, version: int) -> Dict[str, Any]:
        return self.request(
            "DELETE",
            f"{self._project(project_id)}/participants/{participant_id}",
            params={"version": version},
        )

    # Responses

    def upsert_response(self, project_id: str, response: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("POST", f"{self._project(project_id)}/responses", json=response)

    def remove_response(
        self, project_id: str, participant_id: str, candidate_id: str, version: int
    ) -> Dict[str, Any]:
        return self.request(
            "DELETE",
            f"{self._project(project_id)}/responses",
            params={"participant_id": participant_id, "candidate_id": candidate_id, "version": version},
        )

    # Share tokens

    def get_share_tokens(self, project_id: str) -> Dict[str, Any]:
        return self.request("GET", f"{self._project(project_id)}/share")

    def generate_share_tokens(self, project_id: str, base_url: Optional[str] = None) -> Dict[str, Any]:
        return self.request("POST", f"{self._project(project_id)}/share/generate", json={"base_url": base_url})

    def rotate_share_tokens(
        self, project_id: str, version: int, base_url: Optional[str] = None
    ) -> Dict[str, Any]:
        return self.request(
            "POST",
            f"{self._project(project_id)}/share/rotate",
            json={"version": version, "base_url": base_url},
        )

    def invalidate_share_token(self, project_id: str, token_type: str, version: int) -> Dict[str, Any]:
        return self.request(
            "POST",
            f"{self._project(project_id)}/share/{token_type}/invalidate",
            json={"version": version},
        )
