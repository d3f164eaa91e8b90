"""Typed HTTP client for the Spendlog API.

The bearer token is obtained from a ``token_provider`` callable passed
to the client and asked for on every request.  Nothing is stored at
module level, so a client can be built before the caller has signed in
and will start sending credentials as soon as the provider returns one.

```python
client = SpendlogClient("http://localhost:8000", token_provider=session.get_token)
handle = client.enqueue("Coffee 4.50")
job = client.get_status(handle.job_id)
```
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

import httpx

from spendlog.models.enums import JobStatus
from spendlog.models.schemas import EnqueueResponse, JobRead, ProductRead

TokenProvider = Callable[[], Optional[str]]


class SpendlogAPIError(Exception):
    """Non-2xx response from the API."""

    def __init__(self, status_code: int, detail: Any):
        super().__init__(f"HTTP {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class SpendlogClient:
    def __init__(
        self,
        base_url: str,
        token_provider: Optional[TokenProvider] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._token_provider = token_provider
        self._http = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def __enter__(self) -> "SpendlogClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    def _headers(self) -> Dict[str, str]:
        token = self._token_provider() if self._token_provider else None
        return {"Authorization": f"Bearer {token}"} if token else {}

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = self._http.request(method, path, headers=self._headers(), **kwargs)
        if response.is_error:
            try:
                body = response.json()
                detail = body.get("details") or body.get("detail") or body
            except ValueError:
                detail = response.text
            raise SpendlogAPIError(response.status_code, detail)
        return response.json()

    # ------------------------------------------------------------------

    def enqueue(self, text: str) -> EnqueueResponse:
        return EnqueueResponse.model_validate(self._request("POST", "/extraction/enqueue", json={"text": text}))

    def get_status(self, job_id: str) -> JobRead:
        return JobRead.model_validate(self._request("GET", f"/extraction/jobs/{job_id}"))

    def list_jobs(self, status: Optional[JobStatus] = None, limit: int = 20, offset: int = 0) -> List[JobRead]:
        params: Dict[str, Any] = {"limit": limit, "offset": offset}
        if status is not None:
            params["status"] = JobStatus(status).value
        return [JobRead.model_validate(item) for item in self._request("GET", "/extraction/jobs", params=params)]

    def list_products(self) -> List[ProductRead]:
        return [ProductRead.model_validate(item) for item in self._request("GET", "/products")]
