# clients/base_http_client.py
import requests
import re

from typing import Any, Dict, Optional, Tuple
from urllib.parse import urljoin

from rideprobe.core.exceptions.exceptions import ApiError, NetworkError
from rideprobe.utils.log import app_logger


def _sanitize(error: Exception) -> str:
    # remove memory addresses like <HTTPConnection(...) at 0x...>
    return re.sub(r'0x[0-9a-fA-F]+', '<ptr>', str(error))


class BaseHTTPClient:
    """Thin requests.Session wrapper: one request per call, no retries, typed errors"""

    USER_AGENT = "rideprobe/0.1"

    def __init__(self,
                 base_url: str,
                 token: Optional[str] = None,
                 auth: Optional[Tuple[str, str]] = None,
                 timeout: float = 30,
                 content_type: Optional[str] = 'application/json',
                 accept: Optional[str] = 'application/json',
                 session: Optional[requests.Session] = None,
                 ):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.timeout = timeout
        self.content_type = content_type
        self.accept = accept
        self.session = session or requests.Session()
        if auth:
            self.session.auth = auth

        # setup default headers
        self._setup_default_headers()

    def _setup_default_headers(self):
        """setup default headers for the client"""
        self.session.headers.update({
            'User-Agent': self.USER_AGENT,
            'Accept': self.accept,
            'Content-Type': self.content_type,
        })

        if self.token:
            self.session.headers['Authorization'] = f"Bearer {self.token}"

    def _build_url(self, endpoint: str) -> str:
        """build full URL"""
        if not endpoint:
            return self.base_url
        return urljoin(f"{self.base_url}/", endpoint.lstrip('/'))

    @staticmethod
    def _parse_body(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            app_logger.debug("request.parse_text", url=response.url, length=len(response.text))
            return response.text

    def request(self, method: str, endpoint: str,
                data: Optional[Dict] = None,
                params: Optional[Dict] = None,
                headers: Optional[Dict] = None) -> Tuple[int, Any]:
        """do a single HTTP request and return (status_code, parsed body)

        Raises NetworkError when the transport fails and ApiError when the
        remote answers with a non-2xx status.
        """
        url = self._build_url(endpoint)
        app_logger.debug("request.start", method=method, url=url)

        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                json=data,
                headers=headers or {},
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            sanitized = _sanitize(e)
            app_logger.error("request.failed", method=method, url=url, exc_type=type(e).__name__, error=sanitized)
            raise NetworkError(url, sanitized) from e

        body = self._parse_body(response)
        if not 200 <= response.status_code < 300:
            app_logger.error("request.status", method=method, url=url, status_code=response.status_code, body=body)
            raise ApiError(url, response.status_code, body)

        app_logger.debug("request.ok", method=method, url=url, status_code=response.status_code)
        return response.status_code, body

    def get(self, endpoint: str, params: Optional[Dict] = None,
            headers: Optional[Dict] = None) -> Any:
        """do GET request"""
        return self.request('GET', endpoint, params=params, headers=headers)[1]

    def post(self, endpoint: str, data: Optional[Dict] = None,
             headers: Optional[Dict] = None) -> Any:
        """do POST request"""
        return self.request('POST', endpoint, data=data, headers=headers)[1]

    def close(self):
        """close HTTP session"""
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
