"""Clair v1 API client for image vulnerability analysis."""

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx
from pydantic import ValidationError

from klarscan.consts import CLAIR_DEFAULT_PORT, CLAIR_LAYER_FORMAT
from klarscan.exceptions import ScannerError, ScannerErrorKind
from klarscan.models.model_scanner import Vulnerability
from klarscan.registry.image import Image

logger = logging.getLogger(__name__)


class VulnerabilityAnalyzer(ABC):
    """Analysis service that turns a pulled image into findings."""

    @abstractmethod
    async def analyse(self, image: Image) -> list[Vulnerability]:
        """Submit the image and return its vulnerabilities.

        Raises:
            ScannerError: If the service is unreachable or answers with an error
        """
        ...


def normalize_clair_address(address: str) -> str:
    """Add the default scheme and port to a bare Clair address.

    Examples:
        clair           → http://clair:6060
        clair:8080      → http://clair:8080
        https://clair   → https://clair:6060
    """
    if not address.startswith(("http://", "https://")):
        address = f"http://{address}"
    url = httpx.URL(address)
    if url.port is None:
        url = url.copy_with(port=CLAIR_DEFAULT_PORT)
    return str(url).rstrip("/")


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json()["Error"]["Message"]
    except (ValueError, KeyError, TypeError):
        return response.text[:500]


class ClairClient(VulnerabilityAnalyzer):
    """Pushes image layers to Clair and reads back the findings of the top layer."""

    def __init__(
        self,
        address: str,
        timeout: float = 60.0,
        trace: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize ClairClient.

        Args:
            address: Clair address (scheme and port optional)
            timeout: Per-request timeout in seconds
            trace: Log every request and response at debug level
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.address = normalize_clair_address(address)
        self.timeout = timeout
        self.trace = trace
        self._transport = transport

    async def _call(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        json_body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        if self.trace:
            logger.debug(f"{method} {self.address}{url}")
        try:
            response = await client.request(method, url, json=json_body)
        except httpx.TimeoutException as e:
            raise ScannerError(ScannerErrorKind.TIMEOUT, f"Clair request timed out: {url}") from e
        except httpx.RequestError as e:
            raise ScannerError(
                ScannerErrorKind.UNREACHABLE, f"Clair at {self.address} is unreachable: {e}"
            ) from e

        if self.trace:
            logger.debug(f"{method} {url} → {response.status_code}")
        if response.status_code >= 400:
            raise ScannerError(
                ScannerErrorKind.API_ERROR,
                f"Clair returned {response.status_code} for {method} {url}: "
                f"{_error_message(response)}",
            )
        return response

    async def push_layer(
        self, client: httpx.AsyncClient, image: Image, layer: str, parent: str
    ) -> None:
        payload = {
            "Layer": {
                "Name": layer,
                "Path": image.layer_url(layer),
                "ParentName": parent,
                "Format": CLAIR_LAYER_FORMAT,
                "Headers": image.registry_headers(),
            }
        }
        await self._call(client, "POST", "/v1/layers", json_body=payload)

    async def analyse(self, image: Image) -> list[Vulnerability]:
        if not image.fs_layers:
            return []

        async with httpx.AsyncClient(
            base_url=self.address,
            timeout=httpx.Timeout(self.timeout),
            transport=self._transport,
        ) as client:
            parent = ""
            for layer in image.fs_layers:
                await self.push_layer(client, image, layer, parent)
                parent = layer

            response = await self._call(
                client, "GET", f"/v1/layers/{parent}?features&vulnerabilities"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ScannerError(ScannerErrorKind.INVALID_RESPONSE, "Clair response is not JSON") from e

        try:
            return self._parse_features(data)
        except (ValidationError, TypeError, AttributeError) as e:
            raise ScannerError(
                ScannerErrorKind.INVALID_RESPONSE, f"Clair returned a malformed layer report: {e}"
            ) from e

    def _parse_features(self, data: Any) -> list[Vulnerability]:
        """Flatten Clair's feature list into vulnerabilities."""
        if not isinstance(data, dict) or not isinstance(data.get("Layer"), dict):
            raise ScannerError(ScannerErrorKind.INVALID_RESPONSE, "Clair response holds no layer")

        vulnerabilities = []
        for feature in data["Layer"].get("Features") or []:
            for vuln in feature.get("Vulnerabilities") or []:
                vulnerabilities.append(
                    Vulnerability(
                        name=vuln.get("Name", ""),
                        namespace_name=vuln.get("NamespaceName", ""),
                        description=vuln.get("Description", ""),
                        link=vuln.get("Link", ""),
                        severity=vuln.get("Severity", "Unknown"),
                        fixed_by=vuln.get("FixedBy", ""),
                        feature_name=feature.get("Name", ""),
                        feature_version=feature.get("Version", ""),
                    )
                )

        logger.debug(f"Clair reported {len(vulnerabilities)} vulnerabilities")
        return vulnerabilities
