"""Thin Plane REST client used by the importer."""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests


@dataclass
class Config:
    """Configuration for the importer CLI and API client."""

    base_url: str
    api_key: str
    workspace_slug: str
    project_name: str
    dry_run: bool = False
    verify_ssl: bool = True
    debug_http: bool = False
    timeout: float = 30.0


class PlaneError(RuntimeError):
    """Base error for anything the Plane client raises."""


class PlaneNetworkError(PlaneError):
    """The request never produced an HTTP response."""


class PlaneHTTPError(PlaneError):
    """HTTP error wrapper that preserves the request context."""

    def __init__(self, method: str, path: str, status_code: int, text: str):
        super().__init__(f"{method} {path} failed: {status_code} {text}")
        self.method = method
        self.path = path
        self.status_code = status_code
        self.text = text


class PlaneResponseError(PlaneHTTPError):
    """A successful status whose body is not JSON."""


class PlaneAuthError(PlaneHTTPError):
    pass


class PlaneValidationError(PlaneHTTPError):
    pass


class PlaneRateLimitError(PlaneHTTPError):
    def __init__(
        self,
        method: str,
        path: str,
        status_code: int,
        text: str,
        retry_after: Optional[int] = None,
    ):
        super().__init__(method, path, status_code, text)
        self.retry_after = retry_after


def parse_retry_after(value: Optional[str]) -> Optional[int]:
    """Return the Retry-After header as whole seconds, or None if unusable."""
    if value is None:
        return None
    value = str(value).strip()
    if not value:
        return None
    try:
        seconds = int(float(value))
    except (ValueError, OverflowError):
        # HTTP-date form is not honored.
        return None
    if seconds < 0:
        return None
    return seconds


def _http_error(method: str, path: str, resp: requests.Response) -> PlaneHTTPError:
    status = resp.status_code
    if status == 429:
        return PlaneRateLimitError(
            method,
            path,
            status,
            resp.text,
            retry_after=parse_retry_after(resp.headers.get("Retry-After")),
        )
    if status in (401, 403):
        return PlaneAuthError(method, path, status, resp.text)
    if status in (400, 422):
        return PlaneValidationError(method, path, status, resp.text)
    return PlaneHTTPError(method, path, status, resp.text)


def normalize_results(data: Any) -> List[Dict[str, Any]]:
    """Collapse a bare list or a ``{"results": [...]}`` envelope into a list."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        results = data.get("results")
        if isinstance(results, list):
            return results
    return []


class PlaneClient:
    """Minimal Plane API client for projects, states and issues."""

    def __init__(self, cfg: Config, session: Optional[requests.Session] = None):
        self.cfg = cfg
        self.session = session or requests.Session()
        self.project_id: Optional[str] = None
        self._dry_run_ids = itertools.count(1)
        self.session.headers.update(
            {
                "X-API-Key": cfg.api_key,
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
        )

    def _url(self, path: str) -> str:
        return f"{self.cfg.base_url.rstrip('/')}/api/v1{path}"

    def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = self._url(path)
        if self.cfg.debug_http:
            print(f"HTTP {method} {url} params={params}")
        try:
            resp = self.session.request(
                method,
                url,
                json=payload,
                params=params,
                verify=self.cfg.verify_ssl,
                timeout=self.cfg.timeout,
            )
        except requests.RequestException as exc:
            raise PlaneNetworkError(f"{method} {path} failed: {exc}") from exc
        if self.cfg.debug_http:
            print(f"HTTP {resp.status_code} {url}")
        if not resp.ok:
            if self.cfg.debug_http:
                print(f"HTTP BODY {resp.text}")
            raise _http_error(method, path, resp)
        if resp.text:
            try:
                return resp.json()
            except ValueError as exc:
                raise PlaneResponseError(method, path, resp.status_code, resp.text) from exc
        return {}

    def _project_path(self, suffix: str = "") -> str:
        if not self.project_id:
            raise PlaneError("Client not initialized. Call initialize() first.")
        return f"/workspaces/{self.cfg.workspace_slug}/projects/{self.project_id}{suffix}"

    def initialize(self) -> str:
        """Resolve the configured project name to its id."""
        data = self._request("GET", f"/workspaces/{self.cfg.workspace_slug}/projects/")
        if not isinstance(data, (list, dict)):
            raise PlaneError(f"Unexpected projects response: {data!r}")
        projects = normalize_results(data)
        for project in projects:
            if project.get("name") == self.cfg.project_name:
                self.project_id = str(project["id"])
                return self.project_id
        names = ", ".join(str(p.get("name")) for p in projects) or "none"
        raise PlaneError(f"Project {self.cfg.project_name!r} not found (available: {names}).")

    def list_states(self) -> List[Dict[str, Any]]:
        return normalize_results(self._request("GET", self._project_path("/states/")))

    def list_issues(self, page: int = 1, per_page: int = 100) -> List[Dict[str, Any]]:
        data = self._request(
            "GET",
            self._project_path("/issues/"),
            params={"page": page, "per_page": per_page},
        )
        return normalize_results(data)

    def create_issue(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        path = self._project_path("/issues/")
        if self.cfg.dry_run:
            print(f"DRY RUN POST {path} payload={payload}")
            return {"id": f"dry-run-{next(self._dry_run_ids)}", **payload}
        return self._request("POST", path, payload)

    def update_issue(self, issue_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        path = self._project_path(f"/issues/{issue_id}/")
        if self.cfg.dry_run:
            print(f"DRY RUN PATCH {path} payload={payload}")
            return {"id": issue_id, **payload}
        return self._request("PATCH", path, payload)

    def delete_issue(self, issue_id: str) -> None:
        path = self._project_path(f"/issues/{issue_id}/")
        if self.cfg.dry_run:
            print(f"DRY RUN DELETE {path}")
            return
        self._request("DELETE", path)
