"""Tests for ScanOrchestrator."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from klarscan.exceptions import (
    InvalidReferenceError,
    LayerExtractionError,
    PullError,
    PullErrorKind,
    ScannerError,
    ScannerErrorKind,
)
from klarscan.models.model_config import Config, DockerConfig
from klarscan.models.model_scanner import Vulnerability
from klarscan.scanner.clair_client import ClairClient
from klarscan.scanner.scan_orchestrator import ScanOrchestrator

from conftest import LAYERS, FakeRegistry


def _analyzer(
    result: list[Vulnerability] | None = None, error: Exception | None = None
) -> MagicMock:
    analyzer = MagicMock()
    analyzer.analyse = AsyncMock(return_value=result or [], side_effect=error)
    return analyzer


class TestScanOrchestrator:
    """Tests for ScanOrchestrator class."""

    @pytest.mark.asyncio
    async def test_successful_scan(self, scan_config: Config, fake_registry: FakeRegistry) -> None:
        vulns = [Vulnerability(name="CVE-2024-1", severity="High")]
        analyzer = _analyzer(result=vulns)
        orchestrator = ScanOrchestrator(
            analyzer_factory=lambda config: analyzer,
            registry_transport=fake_registry.transport,
        )

        outcome = await orchestrator.execute_scan(scan_config)

        assert outcome.error is None
        assert not outcome.degraded
        assert outcome.result.vulnerabilities == vulns
        assert outcome.result.image_hash == "e" * 64
        assert outcome.result.image_schema_version == 2
        assert [c.layer for c in outcome.result.fs_layer_commands] == LAYERS
        analyzer.analyse.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_analysis_failure_keeps_result(
        self, scan_config: Config, fake_registry: FakeRegistry
    ) -> None:
        error = ScannerError(ScannerErrorKind.UNREACHABLE, "Clair at http://clair:6060 is down")
        orchestrator = ScanOrchestrator(
            analyzer_factory=lambda config: _analyzer(error=error),
            registry_transport=fake_registry.transport,
        )

        outcome = await orchestrator.execute_scan(scan_config)

        assert outcome.degraded
        assert outcome.error is error
        assert outcome.result.vulnerabilities == []
        assert len(outcome.result.fs_layer_commands) == 3
        assert outcome.result.image_hash == "e" * 64

    @pytest.mark.asyncio
    async def test_analysis_timeout_is_non_fatal(
        self, docker_config: DockerConfig, fake_registry: FakeRegistry
    ) -> None:
        class SlowAnalyzer:
            async def analyse(self, image):
                await asyncio.sleep(5)
                return []

        config = Config(
            clair_addr="http://clair:6060",
            docker=docker_config,
            clair_timeout=timedelta(milliseconds=50),
        )
        orchestrator = ScanOrchestrator(
            analyzer_factory=lambda c: SlowAnalyzer(),
            registry_transport=fake_registry.transport,
        )

        outcome = await orchestrator.execute_scan(config)

        assert outcome.error is not None
        assert outcome.error.kind == ScannerErrorKind.TIMEOUT
        assert outcome.result.vulnerabilities == []
        assert len(outcome.result.fs_layer_commands) == 3

    @pytest.mark.asyncio
    async def test_clair_unreachable_end_to_end(
        self, scan_config: Config, fake_registry: FakeRegistry
    ) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        orchestrator = ScanOrchestrator(
            analyzer_factory=lambda c: ClairClient(
                c.clair_addr, transport=httpx.MockTransport(refuse)
            ),
            registry_transport=fake_registry.transport,
        )

        outcome = await orchestrator.execute_scan(scan_config)

        assert outcome.error.kind == ScannerErrorKind.UNREACHABLE
        assert outcome.result.image_hash == "e" * 64

    @pytest.mark.asyncio
    async def test_malformed_clair_report_keeps_result(
        self, scan_config: Config, fake_registry: FakeRegistry
    ) -> None:
        report = {
            "Layer": {
                "Features": [
                    {"Name": "openssl", "Vulnerabilities": [{"Name": None, "Severity": "High"}]}
                ]
            }
        }

        def clair(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return httpx.Response(201)
            return httpx.Response(200, json=report)

        orchestrator = ScanOrchestrator(
            analyzer_factory=lambda c: ClairClient(
                c.clair_addr, transport=httpx.MockTransport(clair)
            ),
            registry_transport=fake_registry.transport,
        )

        outcome = await orchestrator.execute_scan(scan_config)

        assert outcome.degraded
        assert outcome.error.kind == ScannerErrorKind.INVALID_RESPONSE
        assert outcome.result.vulnerabilities == []
        assert len(outcome.result.fs_layer_commands) == 3
        assert outcome.result.image_hash == "e" * 64

    @pytest.mark.asyncio
    async def test_unexpected_analysis_error_keeps_result(
        self, scan_config: Config, fake_registry: FakeRegistry
    ) -> None:
        cause = RuntimeError("boom")
        orchestrator = ScanOrchestrator(
            analyzer_factory=lambda config: _analyzer(error=cause),
            registry_transport=fake_registry.transport,
        )

        outcome = await orchestrator.execute_scan(scan_config)

        assert outcome.degraded
        assert outcome.error.kind == ScannerErrorKind.API_ERROR
        assert outcome.error.__cause__ is cause
        assert outcome.result.image_hash == "e" * 64

    @pytest.mark.asyncio
    async def test_malformed_manifest_is_fatal(self, scan_config: Config) -> None:
        analyzer = _analyzer()
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json={"schemaVersion": 2, "layers": [{"size": 1}]})
        )
        orchestrator = ScanOrchestrator(
            analyzer_factory=lambda config: analyzer, registry_transport=transport
        )

        with pytest.raises(PullError) as exc_info:
            await orchestrator.execute_scan(scan_config)

        assert exc_info.value.kind == PullErrorKind.INVALID_MANIFEST
        analyzer.analyse.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_image_is_fatal(self, scan_config: Config) -> None:
        analyzer = _analyzer()
        orchestrator = ScanOrchestrator(
            analyzer_factory=lambda config: analyzer,
            registry_transport=FakeRegistry(missing=True).transport,
        )

        with pytest.raises(PullError) as exc_info:
            await orchestrator.execute_scan(scan_config)

        assert exc_info.value.kind == PullErrorKind.NOT_FOUND
        analyzer.analyse.assert_not_called()

    @pytest.mark.asyncio
    async def test_image_without_layers_is_fatal(self, scan_config: Config) -> None:
        analyzer = _analyzer()
        orchestrator = ScanOrchestrator(
            analyzer_factory=lambda config: analyzer,
            registry_transport=FakeRegistry(layers=[]).transport,
        )

        with pytest.raises(LayerExtractionError, match="failed to pull fsLayers"):
            await orchestrator.execute_scan(scan_config)

        analyzer.analyse.assert_not_called()

    @pytest.mark.asyncio
    async def test_layer_history_failure_is_fatal(self, scan_config: Config) -> None:
        registry = FakeRegistry()

        def handler(request: httpx.Request) -> httpx.Response:
            if "/blobs/" in request.url.path:
                return httpx.Response(500)
            return registry.handler(request)

        orchestrator = ScanOrchestrator(
            analyzer_factory=lambda config: _analyzer(),
            registry_transport=httpx.MockTransport(handler),
        )

        with pytest.raises(LayerExtractionError):
            await orchestrator.execute_scan(scan_config)

    @pytest.mark.asyncio
    async def test_invalid_reference_makes_no_requests(
        self, scan_config: Config, fake_registry: FakeRegistry
    ) -> None:
        config = scan_config.model_copy(
            update={"docker": scan_config.docker.model_copy(update={"image_name": "Bad Image"})}
        )
        orchestrator = ScanOrchestrator(
            analyzer_factory=lambda c: _analyzer(),
            registry_transport=fake_registry.transport,
        )

        with pytest.raises(InvalidReferenceError):
            await orchestrator.execute_scan(config)

        assert fake_registry.requests == []

    @pytest.mark.asyncio
    async def test_pull_timeout(self, docker_config: DockerConfig) -> None:
        class SlowTransport(httpx.AsyncBaseTransport):
            async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
                await asyncio.sleep(5)
                return httpx.Response(200)

        config = Config(
            clair_addr="http://clair:6060",
            docker=docker_config.model_copy(update={"timeout": timedelta(milliseconds=50)}),
        )
        orchestrator = ScanOrchestrator(
            analyzer_factory=lambda c: _analyzer(),
            registry_transport=SlowTransport(),
        )

        with pytest.raises(PullError) as exc_info:
            await orchestrator.execute_scan(config)

        assert exc_info.value.kind == PullErrorKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_factory_receives_config(
        self, scan_config: Config, fake_registry: FakeRegistry
    ) -> None:
        factory = MagicMock(return_value=_analyzer())
        orchestrator = ScanOrchestrator(
            analyzer_factory=factory, registry_transport=fake_registry.transport
        )

        await orchestrator.execute_scan(scan_config)

        factory.assert_called_once_with(scan_config)

    def test_default_analyzer_is_clair(self, scan_config: Config) -> None:
        orchestrator = ScanOrchestrator()
        analyzer = orchestrator.analyzer_factory(scan_config)
        assert isinstance(analyzer, ClairClient)
        assert analyzer.address == "http://clair:6060"
