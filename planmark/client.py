# client.py: HTTP client the editor uses to talk to the PlanMark server

from typing import Any, Dict, List, Optional

import requests

from .shapes import Layer, layers_from_data, layers_to_data


class ApiError(Exception):
    def __init__(self, status: int, message: str):
        super().__init__(f"{status}: {message}")
        self.status = status
        self.message = message


class AnnotationClient:
    def __init__(self, base_url: str, session: Optional[requests.Session] = None, timeout: float = 10):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method: str, path: str, **kwargs) -> Any:
        resp = self.session.request(method, self.base_url + path, timeout=self.timeout, **kwargs)
        if not resp.ok:
            try:
                body = resp.json()
            except ValueError:
                body = None
            message = body.get("error", resp.reason) if isinstance(body, dict) else resp.reason
            raise ApiError(resp.status_code, message)
        return resp.json()

    def get_project(self, project_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/projects/{project_id}")

    def get_page(self, project_id: str, page_number: int) -> Dict[str, Any]:
        return self._request("GET", f"/api/projects/{project_id}/pages/{page_number}")

    def get_annotations(self, project_id: str, page_number: int) -> Optional[List[Layer]]:
        """Stored layers for a page, or None when the page has never been saved."""
        body = self._request("GET", f"/api/annotations/{project_id}/{page_number}")
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, list):
            return None
        return layers_from_data(data)

    def save_annotations(self, project_id: str, page_number: int, layers: List[Layer]) -> Dict[str, Any]:
        return self._request("PUT", f"/api/annotations/{project_id}/{page_number}",
                             json={"data": layers_to_data(layers)})

    def save_project(self, project_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/api/projects/{project_id}/save")
