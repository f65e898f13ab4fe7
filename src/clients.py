"""
REST API client for the Kubernetes control plane hosting the cStor pools.
"""

import logging
import os
import time
from typing import Dict, List, Optional

import google.auth
import google.auth.exceptions
import requests
from google.auth.transport.requests import AuthorizedSession

from errors import ApiError, ConfigurationError, ConflictError, NotFoundError
from kinds import JOB, POD, ResourceKind

logger = logging.getLogger(__name__)

DEFAULT_API_SERVER = "https://kubernetes.default.svc"
MERGE_PATCH_CONTENT_TYPE = "application/merge-patch+json"

SERVICE_ACCOUNT_DIR = "/var/run/secrets/kubernetes.io/serviceaccount"
SERVICE_ACCOUNT_TOKEN = os.path.join(SERVICE_ACCOUNT_DIR, "token")
SERVICE_ACCOUNT_CA = os.path.join(SERVICE_ACCOUNT_DIR, "ca.crt")


class ServiceAccountAuth(requests.auth.AuthBase):
    """
    Bearer token read from a mounted service-account token file.

    The file is re-read on every request because the kubelet rotates
    projected tokens; the last good token is kept if a read fails.
    """

    def __init__(self, token_file: str):
        self.token_file = token_file
        try:
            self.token = self._read()
        except OSError as e:
            raise ConfigurationError(
                f"cannot read service account token {token_file}: {e}"
            ) from e

    def _read(self) -> str:
        with open(self.token_file) as f:
            return f.read().strip()

    def __call__(self, request):
        try:
            self.token = self._read()
        except OSError as e:
            logger.warning(f"Keeping previous service account token: {e}")
        request.headers["Authorization"] = f"Bearer {self.token}"
        return request


class KubeRestClient:
    """REST client for namespaced Kubernetes resources."""

    RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

    def __init__(
        self,
        api_server: str = DEFAULT_API_SERVER,
        ca_cert: Optional[str] = None,
        timeout_s: int = 60,
        max_retries: int = 5,
        base_delay: float = 2.0,
        page_size: int = 250,
        token_file: Optional[str] = None,
    ):
        """
        Initialize the Kubernetes REST client.

        Google application default credentials are used unless a token file
        is given. Without either, the in-cluster service-account token is
        used when it is mounted.

        Args:
            api_server: Base URL of the Kubernetes API server
            ca_cert: Path to the CA bundle used to verify the API server
            timeout_s: Request timeout in seconds
            max_retries: Maximum number of retries for transient errors
            base_delay: Base delay for exponential backoff
            page_size: Number of items requested per list page
            token_file: Bearer token file to authenticate with instead of
                Google credentials

        Raises:
            ConfigurationError: If no credentials can be found
        """
        self.api_server = api_server.rstrip("/")
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.page_size = page_size

        if token_file:
            self.session = self._service_account_session(token_file, ca_cert)
            return

        try:
            creds, _ = google.auth.default(
                scopes=["https://www.googleapis.com/auth/cloud-platform"]
            )
        except google.auth.exceptions.DefaultCredentialsError as e:
            if not os.path.exists(SERVICE_ACCOUNT_TOKEN):
                raise ConfigurationError(f"no Kubernetes credentials: {e}") from e
            logger.info("Google credentials unavailable, using in-cluster service account")
            self.session = self._service_account_session(SERVICE_ACCOUNT_TOKEN, ca_cert)
            return

        self.session = AuthorizedSession(creds)
        if ca_cert:
            self.session.verify = ca_cert

    @staticmethod
    def _service_account_session(
        token_file: str, ca_cert: Optional[str]
    ) -> requests.Session:
        """Build a session authenticated with a service-account token file."""
        session = requests.Session()
        session.auth = ServiceAccountAuth(token_file)
        if ca_cert:
            session.verify = ca_cert
        elif os.path.exists(SERVICE_ACCOUNT_CA):
            session.verify = SERVICE_ACCOUNT_CA
        return session

    def _url(self, path: str) -> str:
        """Construct full API URL from path."""
        return f"{self.api_server}/{path.lstrip('/')}"

    def _request_with_retry(self, method: str, url: str, **kwargs) -> dict:
        """
        Execute HTTP request with exponential backoff retry for transient errors.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH)
            url: Request URL
            **kwargs: Additional request parameters

        Returns:
            Dictionary with 'response' and 'status_code' keys

        Raises:
            ApiError: If max retries exceeded or credentials cannot be refreshed
        """
        last_error = None

        for attempt in range(self.max_retries + 1):
            try:
                if method.upper() == "GET":
                    resp = self.session.get(url, timeout=self.timeout_s, **kwargs)
                elif method.upper() == "POST":
                    resp = self.session.post(url, timeout=self.timeout_s, **kwargs)
                elif method.upper() == "PUT":
                    resp = self.session.put(url, timeout=self.timeout_s, **kwargs)
                elif method.upper() == "PATCH":
                    resp = self.session.patch(url, timeout=self.timeout_s, **kwargs)
                else:
                    raise ValueError(f"Unsupported method: {method}")
            except google.auth.exceptions.RefreshError as e:
                raise ApiError(f"cannot refresh credentials: {e}") from e
            except requests.exceptions.RequestException as e:
                delay = self._calculate_delay(attempt)
                logger.warning(
                    f"Request error: {e}, attempt {attempt + 1}/{self.max_retries + 1}, waiting {delay:.1f}s..."
                )
                last_error = str(e)
                time.sleep(delay)
                continue

            if resp.status_code in self.RETRYABLE_STATUS_CODES:
                delay = self._calculate_delay(attempt, resp)
                error_info = self._error_message(resp)
                logger.warning(
                    f"Retryable error {resp.status_code} ({error_info}), attempt {attempt + 1}/{self.max_retries + 1}, waiting {delay:.1f}s..."
                )
                last_error = f"HTTP {resp.status_code}: {error_info or resp.text[:200]}"
                time.sleep(delay)
                continue

            return {"response": resp, "status_code": resp.status_code}

        raise ApiError(f"Max retries exceeded. Last error: {last_error}")

    def _calculate_delay(self, attempt: int, resp=None) -> float:
        """
        Calculate delay with exponential backoff and jitter.

        Args:
            attempt: Current attempt number
            resp: Optional response object (to check Retry-After header)

        Returns:
            Delay in seconds
        """
        if resp is not None and "Retry-After" in resp.headers:
            try:
                return float(resp.headers["Retry-After"])
            except ValueError:
                pass

        delay = self.base_delay * (2**attempt)
        jitter = delay * 0.2 * (0.5 - time.time() % 1)
        return min(delay + jitter, 120.0)

    @staticmethod
    def _error_message(resp) -> str:
        """Extract the message of a Kubernetes Status body, if any."""
        try:
            return str(resp.json().get("message", ""))
        except ValueError:
            return ""

    def _check(self, resp, action: str, ok=(200,)) -> Dict:
        """Map an HTTP response to decoded JSON or the matching ApiError."""
        if resp.status_code in ok:
            try:
                return resp.json()
            except ValueError as e:
                raise ApiError(
                    f"{action} returned an invalid body: {resp.text[:200]}",
                    status_code=resp.status_code,
                ) from e
        message = f"{action} failed ({resp.status_code}): {self._error_message(resp) or resp.text}"
        if resp.status_code == 404:
            raise NotFoundError(message, status_code=404)
        if resp.status_code == 409:
            raise ConflictError(message, status_code=409)
        raise ApiError(message, status_code=resp.status_code)

    def get_resource(self, kind: ResourceKind, name: str, namespace: str) -> Dict:
        """
        Get a namespaced object.

        Args:
            kind: Resource kind descriptor
            name: Object name
            namespace: Object namespace

        Returns:
            Object as dictionary

        Raises:
            NotFoundError: If the object does not exist
            ApiError: If API call fails
        """
        result = self._request_with_retry("GET", self._url(kind.path(namespace, name)))
        return self._check(result["response"], f"get {kind.name} {name}")

    def list_resources(
        self, kind: ResourceKind, namespace: str, selector: Optional[str] = None
    ) -> List[Dict]:
        """
        List namespaced objects, optionally filtered by a label selector.

        Args:
            kind: Resource kind descriptor
            namespace: Namespace to list in
            selector: Kubernetes label selector

        Returns:
            Objects in the order returned by the API server

        Raises:
            ApiError: If API call fails
        """
        url = self._url(kind.path(namespace))
        items: List[Dict] = []
        continue_token: Optional[str] = None

        while True:
            params = {"limit": self.page_size}
            if selector:
                params["labelSelector"] = selector
            if continue_token:
                params["continue"] = continue_token

            result = self._request_with_retry("GET", url, params=params)
            data = self._check(result["response"], f"list {kind.plural}")
            items.extend(data.get("items") or [])

            continue_token = (data.get("metadata") or {}).get("continue")
            if not continue_token:
                break

        return items

    def patch_resource(
        self, kind: ResourceKind, name: str, namespace: str, delta: bytes
    ) -> Dict:
        """
        Apply a JSON merge patch to an object.

        Args:
            kind: Resource kind descriptor
            name: Object name
            namespace: Object namespace
            delta: Encoded merge patch

        Returns:
            Patched object as dictionary

        Raises:
            ApiError: If API call fails
        """
        result = self._request_with_retry(
            "PATCH",
            self._url(kind.path(namespace, name)),
            data=delta,
            headers={"Content-Type": MERGE_PATCH_CONTENT_TYPE},
        )
        return self._check(result["response"], f"patch {kind.name} {name}")

    def create_resource(self, kind: ResourceKind, namespace: str, body: Dict) -> Dict:
        """Create an object; ConflictError if it already exists."""
        result = self._request_with_retry(
            "POST", self._url(kind.path(namespace)), json=body
        )
        return self._check(
            result["response"], f"create {kind.name}", ok=(200, 201, 202)
        )

    def replace_resource(
        self, kind: ResourceKind, name: str, namespace: str, body: Dict
    ) -> Dict:
        """Replace an object; ConflictError on a stale resourceVersion."""
        result = self._request_with_retry(
            "PUT", self._url(kind.path(namespace, name)), json=body
        )
        return self._check(result["response"], f"replace {kind.name} {name}", ok=(200, 201))

    def list_pods(self, namespace: str, selector: str) -> List[Dict]:
        return self.list_resources(POD, namespace, selector)

    def get_pod(self, name: str, namespace: str) -> Dict:
        return self.get_resource(POD, name, namespace)

    def get_job(self, name: str, namespace: str) -> Dict:
        return self.get_resource(JOB, name, namespace)
