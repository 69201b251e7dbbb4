"""Pytest configuration and shared fixtures for bds_updater tests."""

import io
import zipfile
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from bds_updater.core.config import AppConfig
from bds_updater.core.fetcher import PackageFetcher
from bds_updater.core.types import Platform


def build_zip(files: dict[str, bytes | str]) -> bytes:
    """Build an in-memory zip archive; names ending in '/' become directories."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, content in files.items():
            if name.endswith("/"):
                archive.writestr(name, b"")
            else:
                archive.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
def zip_builder() -> Callable[[dict[str, bytes | str]], bytes]:
    """Factory for in-memory zip archives."""
    return build_zip


@pytest.fixture
def sample_build_info() -> dict[str, Any]:
    """Sample remote metadata document."""
    return {
        "windows": {
            "stable": "1.21.50.07",
            "preview": "1.21.60.21",
            "versions": ["1.21.40.03", "1.21.44.01", "1.21.50.07"],
            "preview_versions": ["1.21.60.20", "1.21.60.21"],
        },
        "linux": {
            "stable": "1.21.50.07",
            "preview": "1.21.60.21",
            "versions": ["1.21.40.03", "1.21.44.01", "1.21.50.07"],
            "preview_versions": ["1.21.60.20", "1.21.60.21"],
        },
    }


@pytest.fixture
def sample_archive() -> bytes:
    """Server archive with a binary, editable configs and a world."""
    return build_zip({
        "bedrock_server": b"\x7fELF binary",
        "server.properties": "server-name=Dedicated Server\ngamemode=survival\nnew-option=true\n",
        "allowlist.json": "[]\n",
        "permissions.json": "[]\n",
        "config/": b"",
        "config/default/permissions.json": '{"allowed_modules": ["@minecraft/server", "@minecraft/server-ui"]}\n',
        "behavior_packs/vanilla/manifest.json": '{"format_version": 2}\n',
    })


@pytest.fixture
def app_config() -> AppConfig:
    """Configuration pointing at test endpoints."""
    return AppConfig(
        metadata_url="https://meta.test/versions.json",
        archive_url_template="https://dl.test/bin-{platform}{channel}/bedrock-server-{version}.zip",
    )


@pytest.fixture
def make_fetcher(app_config: AppConfig) -> Callable[..., PackageFetcher]:
    """Build a fetcher whose HTTP client is served by a handler function."""

    def factory(
        handler: Callable[[httpx.Request], httpx.Response],
        platform: Platform = Platform.LINUX,
    ) -> PackageFetcher:
        client = httpx.Client(transport=httpx.MockTransport(handler))
        return PackageFetcher(app_config, platform=platform, client=client)

    return factory
