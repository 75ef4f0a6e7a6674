from __future__ import annotations
from typing import Any, List, Optional

import requests

from ..errors import PersistenceError
from ..evidence.base import AssessmentResult, Finding, Observation
from .base import EvidenceSink


class ApiClient(EvidenceSink):
    """Sends evidence to the compliance API."""

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: int = 30,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json", "User-Agent": "psql-evidence/0.1"})
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def create_observations(self, observations: List[Observation]) -> None:
        if observations:
            self._post("/api/observations", [o.to_dict() for o in observations])

    def create_findings(self, findings: List[Finding]) -> None:
        if findings:
            self._post("/api/findings", [f.to_dict() for f in findings])

    def create_result(self, result: AssessmentResult) -> None:
        payload = result.to_dict()
        # observations and findings were already sent on their own
        payload["observations"] = [o.uuid for o in result.observations]
        payload["findings"] = [f.uuid for f in result.findings]
        self._post("/api/results", payload)

    def _post(self, path: str, payload: Any) -> None:
        url = f"{self.base_url}{path}"
        try:
            r = self.session.post(url, json=payload, timeout=self.timeout)
            r.raise_for_status()
        except requests.RequestException as e:
            raise PersistenceError(f"POST {url} failed: {e}", {"url": url}) from e
