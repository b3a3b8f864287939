"""
HTTP plumbing shared by the remote clients.
"""

from typing import Optional, Any
from dataclasses import dataclass
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

RETRY_STATUSES = (429, 500, 502, 503, 504)


@dataclass
class APIError(Exception):
    """
    A failed remote call.

    ``status_code`` is None when no HTTP response arrived at all
    (connection refused, DNS failure, timeout). ``code`` carries the
    backend's own error code when it sends one (e.g. PostgREST ``23505``).
    """
    message: str
    status_code: Optional[int] = None
    response_data: Optional[Any] = None
    code: Optional[str] = None

    @property
    def is_transport_error(self) -> bool:
        return self.status_code is None

    def __str__(self) -> str:
        if self.status_code:
            return f"API Error {self.status_code}: {self.message}"
        return f"API Error: {self.message}"


def _error_from_response(response: requests.Response) -> APIError:
    try:
        body = response.json()
    except ValueError:
        body = {"error": response.text}

    message = response.text or f"HTTP {response.status_code}"
    code = None
    if isinstance(body, dict):
        message = body.get("message") or body.get("error") or message
        if body.get("details"):
            message = f"{message} ({body['details']})"
        code = body.get("code")

    return APIError(message, status_code=response.status_code, response_data=body, code=code)


class BaseClient:
    """
    Session-backed JSON client rooted at one base URL.

    Retries are opt-in through ``max_retries``; 0 disables them entirely.
    """

    def __init__(
        self,
        base_url: str,
        timeout: int = 30,
        max_retries: int = 0,
        retry_backoff_factor: float = 0.5,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()

        adapter = HTTPAdapter(max_retries=Retry(
            total=max_retries,
            backoff_factor=retry_backoff_factor,
            status_forcelist=RETRY_STATUSES,
            allowed_methods=None,
            raise_on_status=False,
        ))
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def _request(self, method: str, endpoint: str, **kwargs) -> Any:
        """
        Send a request and decode the reply.

        Returns:
            The decoded JSON body; {} for an empty body (e.g. 201/204 with
            ``return=minimal``); {"data": text} for a non-JSON body

        Raises:
            APIError: On any transport failure or a status >= 400
        """
        kwargs.setdefault("timeout", self.timeout)
        url = f"{self.base_url}{endpoint}"

        try:
            response = self.session.request(method, url, **kwargs)
        except requests.exceptions.Timeout as e:
            raise APIError(f"Request timeout: {e}")
        except requests.exceptions.ConnectionError as e:
            raise APIError(f"Connection error: {e}")
        except requests.exceptions.RequestException as e:
            raise APIError(f"Request failed: {e}")

        if response.status_code >= 400:
            raise _error_from_response(response)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {"data": response.text}

    def get(self, endpoint: str, **kwargs) -> Any:
        return self._request("GET", endpoint, **kwargs)

    def post(self, endpoint: str, **kwargs) -> Any:
        return self._request("POST", endpoint, **kwargs)

    def delete(self, endpoint: str, **kwargs) -> Any:
        return self._request("DELETE", endpoint, **kwargs)

    def close(self) -> None:
        self.session.close()
