"""Docker Registry HTTP API v2 client.

Handles the pieces of the registry protocol a scan needs:
- Bearer token challenge flow (WWW-Authenticate → token realm)
- Basic auth fallback for registries that ask for it
- Manifest and blob retrieval

Errors are raised as PullError; nothing is retried here.
"""

import base64
import logging
import re
from typing import Any

import httpx

from klarscan.consts import DOCKER_HUB_REGISTRY_HOST, MANIFEST_ACCEPT_TYPES
from klarscan.exceptions import PullError, PullErrorKind
from klarscan.models.model_config import CredentialTriple
from klarscan.registry.reference import ImageReference

logger = logging.getLogger(__name__)

_CHALLENGE_PARAM_RE = re.compile(r'(\w+)="([^"]*)"')


def parse_challenge(header: str) -> tuple[str, dict[str, str]]:
    """Parse a WWW-Authenticate header into (scheme, params).

    Example:
        'Bearer realm="https://auth.docker.io/token",service="registry.docker.io"'
        → ("bearer", {"realm": "https://auth.docker.io/token", "service": "registry.docker.io"})
    """
    scheme, _, rest = header.strip().partition(" ")
    return scheme.lower(), dict(_CHALLENGE_PARAM_RE.findall(rest))


class RegistryClient:
    """Async client for one repository on one registry."""

    def __init__(
        self,
        reference: ImageReference,
        credentials: CredentialTriple | None = None,
        timeout: float = 60.0,
        trace: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize RegistryClient.

        Args:
            reference: Normalized reference of the image to pull
            credentials: Registry credentials (default: anonymous)
            timeout: Per-request timeout in seconds
            trace: Log every request and response at debug level
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.reference = reference
        self.credentials = credentials or CredentialTriple()
        self.timeout = timeout
        self.trace = trace
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._authorization: str | None = None
        if self.credentials.token:
            self._authorization = f"Bearer {self.credentials.token}"

        scheme = "http" if self.credentials.insecure_registry else "https"
        host = DOCKER_HUB_REGISTRY_HOST if reference.is_docker_hub else reference.domain
        self.base_url = f"{scheme}://{host}"

    async def __aenter__(self) -> "RegistryClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                verify=not self.credentials.insecure_tls,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def blob_url(self, digest: str) -> str:
        return f"{self.base_url}/v2/{self.reference.path}/blobs/{digest}"

    def manifest_url(self, reference: str) -> str:
        return f"{self.base_url}/v2/{self.reference.path}/manifests/{reference}"

    def authorization_header(self) -> dict[str, str]:
        """Authorization header obtained so far, for services that fetch blobs themselves."""
        if self._authorization:
            return {"Authorization": self._authorization}
        return {}

    async def _send(self, url: str, headers: dict[str, str]) -> httpx.Response:
        client = await self._get_client()
        request_headers = dict(headers)
        if self._authorization:
            request_headers["Authorization"] = self._authorization

        if self.trace:
            logger.debug(f"GET {url} headers={list(request_headers)}")

        try:
            response = await client.get(url, headers=request_headers)
        except httpx.TimeoutException as e:
            raise PullError(PullErrorKind.TIMEOUT, f"registry request timed out: {url}") from e
        except httpx.RequestError as e:
            raise PullError(
                PullErrorKind.UNREACHABLE, f"registry {self.base_url} is unreachable: {e}"
            ) from e

        if self.trace:
            logger.debug(f"GET {url} → {response.status_code}")
        return response

    async def _get(self, url: str, headers: dict[str, str] | None = None) -> httpx.Response:
        """GET with one authentication round-trip on 401."""
        headers = headers or {}
        response = await self._send(url, headers)

        if response.status_code == 401 and not self.credentials.token:
            await self._authenticate(response)
            response = await self._send(url, headers)

        if response.status_code == 404:
            raise PullError(
                PullErrorKind.NOT_FOUND,
                f"{self.reference} not found on {self.base_url}",
                status_code=404,
            )
        if response.status_code in (401, 403):
            raise PullError(
                PullErrorKind.UNAUTHORIZED,
                f"registry rejected credentials for {self.reference.name} "
                f"({response.status_code})",
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            raise PullError(
                PullErrorKind.UNREACHABLE,
                f"registry returned {response.status_code} for {url}",
                status_code=response.status_code,
            )
        return response

    async def _authenticate(self, response: httpx.Response) -> None:
        """Answer a 401 challenge by obtaining an Authorization header value."""
        scheme, params = parse_challenge(response.headers.get("WWW-Authenticate", ""))

        if scheme == "basic":
            if not self.credentials.username:
                raise PullError(
                    PullErrorKind.UNAUTHORIZED,
                    f"registry {self.base_url} requires credentials",
                    status_code=401,
                )
            raw = f"{self.credentials.username}:{self.credentials.password}".encode()
            self._authorization = f"Basic {base64.b64encode(raw).decode()}"
            return

        if scheme != "bearer" or "realm" not in params:
            raise PullError(
                PullErrorKind.UNAUTHORIZED,
                f"unsupported authentication challenge from {self.base_url}",
                status_code=401,
            )

        query = {"scope": params.get("scope") or f"repository:{self.reference.path}:pull"}
        if params.get("service"):
            query["service"] = params["service"]
        auth = None
        if self.credentials.username:
            auth = (self.credentials.username, self.credentials.password)

        client = await self._get_client()
        try:
            token_response = await client.get(params["realm"], params=query, auth=auth)
            token_response.raise_for_status()
            data = token_response.json()
        except httpx.TimeoutException as e:
            raise PullError(PullErrorKind.TIMEOUT, "token request timed out") from e
        except httpx.HTTPStatusError as e:
            raise PullError(
                PullErrorKind.UNAUTHORIZED,
                f"token request rejected ({e.response.status_code})",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            raise PullError(PullErrorKind.UNREACHABLE, f"token realm unreachable: {e}") from e
        except ValueError as e:
            raise PullError(PullErrorKind.UNAUTHORIZED, "token response is not JSON") from e

        token = data.get("token") or data.get("access_token")
        if not token:
            raise PullError(PullErrorKind.UNAUTHORIZED, "token response holds no token")
        self._authorization = f"Bearer {token}"
        logger.debug(f"Obtained registry token for {self.reference.name}")

    async def get_manifest(self, reference: str) -> tuple[dict[str, Any], str, str]:
        """Fetch a manifest by tag or digest.

        Returns:
            Tuple of (manifest, media_type, digest)
        """
        response = await self._get(
            self.manifest_url(reference),
            headers={"Accept": ", ".join(MANIFEST_ACCEPT_TYPES)},
        )
        try:
            manifest = response.json()
        except ValueError as e:
            raise PullError(
                PullErrorKind.INVALID_MANIFEST, f"manifest for {self.reference} is not JSON"
            ) from e
        if not isinstance(manifest, dict):
            raise PullError(
                PullErrorKind.INVALID_MANIFEST, f"manifest for {self.reference} is not an object"
            )

        media_type = manifest.get("mediaType") or response.headers.get(
            "Content-Type", ""
        ).split(";")[0].strip()
        digest = response.headers.get("Docker-Content-Digest", "")
        return manifest, media_type, digest

    async def get_blob_json(self, digest: str) -> dict[str, Any]:
        """Fetch a JSON blob (image config) by digest."""
        response = await self._get(self.blob_url(digest))
        try:
            data = response.json()
        except ValueError as e:
            raise PullError(PullErrorKind.INVALID_MANIFEST, f"blob {digest} is not JSON") from e
        if not isinstance(data, dict):
            raise PullError(PullErrorKind.INVALID_MANIFEST, f"blob {digest} is not an object")
        return data
