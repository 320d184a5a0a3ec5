"""Drives one image scan: pull → layer history → analysis → report.

Failure policy:
- Stages 1-3 (reference parsing, pull, layer extraction) are fatal; their
  errors propagate and no report is produced.
- Stage 4 (vulnerability analysis) is best effort. On failure the report is
  still built with an empty vulnerability list, and the ScannerError is
  returned next to it in the ScanOutcome.
"""

import asyncio
import logging
from collections.abc import Callable

import httpx

from klarscan.exceptions import (
    LayerExtractionError,
    PullError,
    PullErrorKind,
    ScannerError,
    ScannerErrorKind,
)
from klarscan.models.model_config import Config
from klarscan.models.model_scanner import ScanOutcome, Vulnerability
from klarscan.registry.image import Image
from klarscan.scanner.clair_client import ClairClient, VulnerabilityAnalyzer
from klarscan.scanner.result_aggregator import aggregate

logger = logging.getLogger(__name__)


class ScanOrchestrator:
    """Runs the scan stages for a validated Config."""

    def __init__(
        self,
        analyzer_factory: Callable[[Config], VulnerabilityAnalyzer] | None = None,
        registry_transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize ScanOrchestrator.

        Args:
            analyzer_factory: Builds the analysis client for a config
                (default: ClairClient at config.clair_addr)
            registry_transport: Custom httpx transport for registry traffic
        """
        self.analyzer_factory = analyzer_factory or self._default_analyzer
        self.registry_transport = registry_transport

    @staticmethod
    def _default_analyzer(config: Config) -> VulnerabilityAnalyzer:
        return ClairClient(
            config.clair_addr,
            timeout=config.clair_timeout.total_seconds(),
            trace=config.trace,
        )

    async def execute_scan(self, config: Config) -> ScanOutcome:
        """Scan the image named in the config.

        Args:
            config: Validated scan configuration

        Returns:
            ScanOutcome; ``outcome.error`` is set when analysis failed

        Raises:
            InvalidReferenceError: If the image name is malformed
            PullError: If the image cannot be pulled
            LayerExtractionError: If no layers or layer commands could be obtained
        """
        # Stage 1: reference → image handle
        image = Image(config.docker, trace=config.trace, transport=self.registry_transport)

        try:
            await self._pull(image, config)
            await self._fetch_layers(image, config)
            commands = image.get_fs_commands()

            logger.info(f"Analysing {len(image.fs_layers)} layers")
            vulnerabilities, scan_error = await self._analyse(image, config)
        finally:
            await image.aclose()

        if scan_error is not None:
            logger.error(f"Failed to analyze using API: {scan_error}")
        elif not config.json_output:
            logger.info("Got results from Clair API")

        return ScanOutcome(
            result=aggregate(image, commands, vulnerabilities),
            error=scan_error,
        )

    async def _pull(self, image: Image, config: Config) -> None:
        timeout = config.docker.timeout.total_seconds()
        try:
            await asyncio.wait_for(image.pull(), timeout=timeout)
        except TimeoutError as e:
            raise PullError(
                PullErrorKind.TIMEOUT,
                f"failed to pull image: timed out after {timeout:.0f}s",
            ) from e

    async def _fetch_layers(self, image: Image, config: Config) -> None:
        timeout = config.docker.timeout.total_seconds()
        try:
            await asyncio.wait_for(image.fetch_fs_commands(), timeout=timeout)
        except (PullError, TimeoutError) as e:
            raise LayerExtractionError(f"failed to fetch layer commands: {e}") from e

        if not image.fs_layers:
            raise LayerExtractionError(f"failed to pull fsLayers for {image.reference}")

    async def _analyse(
        self, image: Image, config: Config
    ) -> tuple[list[Vulnerability], ScannerError | None]:
        timeout = config.clair_timeout.total_seconds()
        try:
            analyzer = self.analyzer_factory(config)
            vulnerabilities = await asyncio.wait_for(analyzer.analyse(image), timeout=timeout)
        except TimeoutError as e:
            error = ScannerError(
                ScannerErrorKind.TIMEOUT, f"vulnerability analysis timed out after {timeout:.0f}s"
            )
            error.__cause__ = e
            return [], error
        except ScannerError as e:
            return [], e
        except Exception as e:
            # Analysis failures of any kind must not discard the pulled image
            error = ScannerError(ScannerErrorKind.API_ERROR, f"vulnerability analysis failed: {e}")
            error.__cause__ = e
            return [], error
        return vulnerabilities, None
