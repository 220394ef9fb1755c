import logging
from typing import Any, Dict, List, Optional

import requests

from ..errors import PermanentFailure, TransientFailure

logger = logging.getLogger(__name__)


class SupermemoryClient:
    """Thin HTTP client for the Supermemory store/search API"""

    def __init__(
        self,
        base_url: Optional[str],
        api_key: Optional[str],
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._session = session or requests.Session()

    def is_configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    def store(self, content: str, tags: List[str], metadata: Dict[str, Any]) -> Dict[str, Any]:
        return self._post(
            "/memory", {"content": content, "tags": tags, "metadata": metadata}
        )

    def search(self, query: str, tags: List[str]) -> List[Dict[str, Any]]:
        data = self._post("/search", {"query": query, "tags": tags})
        if isinstance(data, dict):
            data = data.get("results", [])
        if not isinstance(data, list):
            raise PermanentFailure("Unexpected search response shape")
        return data

    def _post(self, path: str, body: Dict[str, Any]):
        if not self.is_configured():
            raise PermanentFailure("Search service not configured")

        try:
            response = self._session.post(
                self.base_url + path,
                json=body,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
        except requests.Timeout:
            raise TransientFailure(f"Request timed out after {self.timeout}s")
        except requests.RequestException as e:
            raise TransientFailure(f"Request error: {e}")

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientFailure(
                f"HTTP {response.status_code}", status_code=response.status_code
            )
        if response.status_code >= 400:
            raise PermanentFailure(
                f"HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError:
            raise PermanentFailure("Search service returned invalid JSON")
