"""Pytest configuration and fixtures."""

import httpx
import pytest

from klarscan.consts import MEDIA_TYPE_MANIFEST_V2
from klarscan.models.model_config import Config, CredentialTriple, DockerConfig

IMAGE_NAME = "registry.example.com/team/app:1.0"
IMAGE_DIGEST = "sha256:" + "e" * 64
CONFIG_DIGEST = "sha256:" + "d" * 64
LAYERS = ["sha256:" + c * 64 for c in "abc"]
TOKEN_REALM = "https://auth.example.com/token"


class FakeRegistry:
    """In-memory registry serving one schema 2 image over httpx.MockTransport."""

    def __init__(
        self,
        layers: list[str] | None = None,
        history: list[dict] | None = None,
        missing: bool = False,
        token: str | None = None,
    ):
        self.layers = LAYERS if layers is None else layers
        if history is None:
            history = [{"created_by": "/bin/sh -c #(nop) ADD file:rootfs in /"}]
            history.append({"created_by": "/bin/sh -c #(nop) ENV PATH=/usr/bin", "empty_layer": True})
            history.extend({"created_by": f"/bin/sh -c step {i}"} for i in range(1, len(self.layers)))
        self.history = history
        self.missing = missing
        self.token = token
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.url.host == "auth.example.com":
            return httpx.Response(200, json={"token": self.token})

        if self.token and request.headers.get("Authorization") != f"Bearer {self.token}":
            return httpx.Response(
                401,
                headers={
                    "WWW-Authenticate": (
                        f'Bearer realm="{TOKEN_REALM}",service="registry.example.com"'
                    )
                },
            )

        if self.missing:
            return httpx.Response(404, json={"errors": [{"code": "MANIFEST_UNKNOWN"}]})

        if "/manifests/" in request.url.path:
            return httpx.Response(
                200,
                json={
                    "schemaVersion": 2,
                    "mediaType": MEDIA_TYPE_MANIFEST_V2,
                    "config": {"digest": CONFIG_DIGEST},
                    "layers": [{"digest": digest} for digest in self.layers],
                },
                headers={"Docker-Content-Digest": IMAGE_DIGEST},
            )

        if request.url.path.endswith(f"/blobs/{CONFIG_DIGEST}"):
            return httpx.Response(200, json={"history": self.history})

        return httpx.Response(404)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_registry() -> FakeRegistry:
    """Registry serving a healthy three-layer image."""
    return FakeRegistry()


@pytest.fixture
def docker_config() -> DockerConfig:
    """Registry settings for the sample image."""
    return DockerConfig(image_name=IMAGE_NAME, credentials=CredentialTriple())


@pytest.fixture
def scan_config(docker_config: DockerConfig) -> Config:
    """Minimal valid scan configuration."""
    return Config(clair_addr="http://clair:6060", docker=docker_config)


@pytest.fixture
def base_env() -> dict[str, str]:
    """Environment with only the required setting."""
    return {"CLAIR_ADDR": "clair.local"}
