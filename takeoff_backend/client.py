"""
Client for the takeoff projects API.

Keeps the session token, attaches it to every protected call, and exposes the
same operations the browser client uses. Reading the token's expiry here is a
convenience for deciding when to ask the user to log in again; the server
is the only place a token is actually verified.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Iterable, Optional

import requests

from takeoff_backend.security import peek_claims

logger = logging.getLogger(__name__)

PUBLIC_PATHS = ("/auth/login", "/auth/register")


class ApiError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(f"HTTP {status_code}: {message}")
        self.status_code = status_code
        self.message = message


class TakeoffApiClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8000/api",
        *,
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.session = session or requests.Session()
        self.timeout = timeout

    # -- session state -------------------------------------------------

    def set_token(self, token: str) -> None:
        self.token = token

    def clear_token(self) -> None:
        self.token = None

    def current_user(self) -> Optional[dict]:
        """Identity from the stored token, or None when absent or expired."""
        if not self.token:
            return None
        claims = peek_claims(self.token)
        exp = claims.get("exp")
        if not claims or (exp is not None and exp < time.time()):
            self.clear_token()
            return None
        return {"id": claims.get("userId"), "email": claims.get("email")}

    def is_authenticated(self) -> bool:
        return self.current_user() is not None

    # -- transport -----------------------------------------------------

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        headers = kwargs.pop("headers", {})
        if self.token and path not in PUBLIC_PATHS:
            headers["Authorization"] = f"Bearer {self.token}"
        url = f"{self.base_url}{path}"
        response = self.session.request(
            method, url, headers=headers, timeout=self.timeout, **kwargs
        )
        if not response.ok:
            try:
                message = response.json().get("error") or response.reason
            except ValueError:
                message = response.reason or "Network error"
            logger.error(f"API request failed: {method} {path} -> {response.status_code}")
            if response.status_code == 401 and path not in PUBLIC_PATHS:
                self.clear_token()
            raise ApiError(response.status_code, message)
        return response

    # -- auth ----------------------------------------------------------

    def register(self, email: str, password: str) -> dict:
        body = self._request(
            "POST", "/auth/register", json={"email": email, "password": password}
        ).json()
        self.set_token(body["token"])
        return body["user"]

    def login(self, email: str, password: str) -> dict:
        body = self._request(
            "POST", "/auth/login", json={"email": email, "password": password}
        ).json()
        self.set_token(body["token"])
        return body["user"]

    def logout(self) -> None:
        self.clear_token()

    # -- projects ------------------------------------------------------

    def list_projects(self) -> list[dict]:
        return self._request("GET", "/projects").json()

    def get_project(self, project_id: str) -> dict:
        return self._request("GET", f"/projects/{project_id}").json()

    def create_project(
        self,
        name: str,
        files: Iterable[tuple[str | Path, str]] = (),
        data: Optional[dict[str, Any]] = None,
        template_project_id: Optional[str] = None,
    ) -> dict:
        """``files`` is a sequence of ``(path, level)`` pairs."""
        form: dict[str, Any] = {"name": name}
        if data is not None:
            form["data"] = json.dumps(data)
        if template_project_id:
            form["templateProjectId"] = template_project_id
        return self._upload("POST", "/projects", form, files)

    def add_pdfs(self, project_id: str, files: Iterable[tuple[str | Path, str]]) -> dict:
        return self._upload("POST", f"/projects/{project_id}/pdfs", {}, files)

    def update_project(
        self,
        project_id: str,
        *,
        name: Optional[str] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> dict:
        body: dict[str, Any] = {}
        if name is not None:
            body["name"] = name
        if data is not None:
            body["data"] = data
        return self._request("PUT", f"/projects/{project_id}", json=body).json()

    def delete_project(self, project_id: str) -> None:
        self._request("DELETE", f"/projects/{project_id}")

    # -- pdfs ----------------------------------------------------------

    def get_pdf_data(self, pdf_id: str) -> bytes:
        return self._request("GET", f"/pdfs/{pdf_id}/data").content

    def set_pdf_level(self, pdf_id: str, level: str) -> dict:
        return self._request("PATCH", f"/pdfs/{pdf_id}", json={"level": level}).json()

    def _upload(
        self,
        method: str,
        path: str,
        form: dict[str, Any],
        files: Iterable[tuple[str | Path, str]],
    ) -> dict:
        handles = []
        try:
            multipart = []
            levels = []
            for file_path, level in files:
                file_path = Path(file_path)
                handle = file_path.open("rb")
                handles.append(handle)
                multipart.append(("pdfs", (file_path.name, handle, "application/pdf")))
                levels.append(level or "")
            if levels:
                form = {**form, "levels": levels}
            return self._request(method, path, data=form, files=multipart or None).json()
        finally:
            for handle in handles:
                handle.close()
