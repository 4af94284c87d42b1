"""HTTP clients for the backend's REST row API and object storage API."""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..exceptions import AuthenticationError, RequestError, TransientNetworkError
from ..models.migration import ExportConfig

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = (429, 500, 502, 503, 504)


class BackendClient:
    """
    Base class for the backend clients.

    Holds the session with the ``apikey`` and bearer token headers and maps
    transport and HTTP failures to the engine's error types:
    - connection errors, timeouts, other transport errors, 429 and 5xx
      -> TransientNetworkError
    - 401 / 403 -> AuthenticationError
    - other 4xx and non-JSON bodies -> RequestError
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Project URL (e.g. https://xyz.supabase.co)
            api_key: Project API key
            access_token: Session token; defaults to the API key
            timeout: Per-request timeout in seconds
            session: Custom requests session
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token or api_key
        self.timeout = timeout
        self._session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(self._get_auth_headers())
        return session

    def _get_auth_headers(self) -> Dict[str, str]:
        headers = {}
        if self.api_key:
            headers["apikey"] = self.api_key
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """Send a request and raise a mapped error on failure."""
        kwargs.setdefault("timeout", self.timeout)

        try:
            response = self._session.request(method, url, **kwargs)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise TransientNetworkError(f"{method} {url} failed: {e}") from e
        except requests.exceptions.RetryError as e:
            raise TransientNetworkError(f"{method} {url} kept failing: {e}") from e
        except requests.exceptions.RequestException as e:
            raise TransientNetworkError(f"{method} {url} failed: {e}") from e

        if response.status_code < 400:
            return response

        message = f"{method} {url} returned {response.status_code}: {response.text[:200]}"
        if response.status_code in TRANSIENT_STATUS_CODES or response.status_code >= 500:
            raise TransientNetworkError(message, status_code=response.status_code)
        if response.status_code in (401, 403):
            raise AuthenticationError(message, status_code=response.status_code)
        raise RequestError(message, status_code=response.status_code)

    def _json(self, response: requests.Response, what: str) -> Any:
        """Decoded JSON body; a body that is not JSON raises RequestError."""
        try:
            return response.json()
        except ValueError as e:
            raise RequestError(f"{what} returned a body that is not JSON: {e}", status_code=response.status_code) from e

    def close(self) -> None:
        self._session.close()


class RestTableClient(BackendClient):
    """
    Client for the PostgREST row API (``/rest/v1``).

    The session mounts a transport-level retry adapter for idempotent reads.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout: float = 30.0,
        transport_retries: int = 2,
        schema: str = "public",
        session: Optional[requests.Session] = None,
    ):
        self.transport_retries = transport_retries
        self.schema = schema
        super().__init__(base_url, api_key, access_token, timeout, session)

    @classmethod
    def from_config(cls, config: ExportConfig) -> "RestTableClient":
        return cls(
            base_url=config.base_url,
            api_key=config.api_key,
            access_token=config.access_token,
            timeout=config.request_timeout,
            transport_retries=config.transport_retries,
            schema=config.db_schema,
        )

    def _create_session(self) -> requests.Session:
        """Create a requests session with retry logic."""
        session = super()._create_session()

        retries = Retry(
            total=self.transport_retries,
            backoff_factor=0.5,
            status_forcelist=[500, 502, 503, 504],
            allowed_methods=["GET", "HEAD"],
            raise_on_status=False,
        )

        adapter = HTTPAdapter(max_retries=retries)
        session.mount("https://", adapter)
        session.mount("http://", adapter)

        if self.schema != "public":
            session.headers["Accept-Profile"] = self.schema

        return session

    def _table_url(self, table: str) -> str:
        return f"{self.base_url}/rest/v1/{table}"

    def fetch_page(
        self,
        table: str,
        offset: int,
        limit: int,
        order_by: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Fetch rows ``offset`` .. ``offset + limit - 1`` of a table.

        Args:
            table: Table name
            offset: First row
            limit: Page size
            order_by: Column giving a stable order across pages

        Returns:
            List of row dictionaries
        """
        params = {"select": "*", "offset": offset, "limit": limit}
        if order_by:
            params["order"] = f"{order_by}.asc"

        response = self._request("GET", self._table_url(table), params=params)
        rows = self._json(response, f"GET {table}")
        if not isinstance(rows, list):
            raise RequestError(f"Unexpected response for {table}: expected a list of rows")

        logger.debug(f"Fetched {len(rows)} rows from {table} at offset {offset}")
        return rows

    def count_rows(self, table: str) -> int:
        """Exact row count of a table."""
        response = self._request(
            "HEAD",
            self._table_url(table),
            params={"select": "*"},
            headers={"Prefer": "count=exact", "Range-Unit": "items", "Range": "0-0"},
        )
        return parse_content_range(response.headers.get("Content-Range", ""))


def parse_content_range(value: str) -> int:
    """Total from a ``Content-Range`` header such as ``0-0/123`` or ``*/0``."""
    _, _, total = value.partition("/")
    if not total or total == "*":
        raise RequestError(f"Response carries no row count (Content-Range: {value!r})")
    try:
        return int(total)
    except ValueError:
        raise RequestError(f"Malformed Content-Range header: {value!r}") from None


class StorageClient(BackendClient):
    """
    Client for the object storage API (``/storage/v1``).

    Transport retries are left to the caller's RetryPolicy.
    """

    @classmethod
    def from_config(cls, config: ExportConfig) -> "StorageClient":
        return cls(
            base_url=config.base_url,
            api_key=config.api_key,
            access_token=config.access_token,
            timeout=config.request_timeout,
        )

    def list(self, bucket: str, prefix: str = "", limit: int = 1000, offset: int = 0) -> List[Dict[str, Any]]:
        """
        List the entries directly under ``prefix``.

        Entries with an ``id`` are objects; entries without one are folders.
        """
        response = self._request(
            "POST",
            f"{self.base_url}/storage/v1/object/list/{bucket}",
            json={
                "prefix": prefix,
                "limit": limit,
                "offset": offset,
                "sortBy": {"column": "name", "order": "asc"},
            },
        )
        entries = self._json(response, f"listing of {bucket}/{prefix}")
        if not isinstance(entries, list):
            raise RequestError(f"Unexpected listing response for {bucket}/{prefix}")
        return entries

    def download(self, bucket: str, path: str) -> bytes:
        """Download one object's bytes."""
        url = f"{self.base_url}/storage/v1/object/{bucket}/{quote(path)}"
        return self._request("GET", url).content
