"""Deliver scan reports to an external result service."""

import logging
from typing import Any

import httpx

from klarscan.consts import FORWARDING_TIMEOUT_SECONDS
from klarscan.exceptions import ForwardingError
from klarscan.models.model_scanner import ScanOutcome

logger = logging.getLogger(__name__)


def build_payload(image_name: str, outcome: ScanOutcome) -> dict[str, Any]:
    """Report body: the result plus the analysis error, if any."""
    return {
        "image": image_name,
        "result": outcome.result.model_dump(mode="json"),
        "error": str(outcome.error) if outcome.error else None,
    }


class ResultForwarder:
    """POSTs scan reports as JSON to a target URL."""

    def __init__(
        self,
        url: str,
        timeout: float = FORWARDING_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def forward(self, image_name: str, outcome: ScanOutcome) -> None:
        """Send one report.

        Raises:
            ForwardingError: If the target is unreachable or rejects the report
        """
        payload = build_payload(image_name, outcome)
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout), transport=self._transport
            ) as client:
                response = await client.post(self.url, json=payload)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ForwardingError(
                f"result service rejected report ({e.response.status_code})"
            ) from e
        except httpx.HTTPError as e:
            raise ForwardingError(f"failed to forward report to {self.url}: {e}") from e

        logger.info(f"Forwarded scan report for {image_name} to {self.url}")
