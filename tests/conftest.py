"""Pytest configuration helpers.

Puts the project root on ``sys.path`` so tests can import ``canvasgen``
however pytest is invoked, and provides a scripted execution backend plus
settings with one Google and one OpenAI-style provider account.
"""
import os
import sys
from typing import Any

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from canvasgen.config import ProviderEntry, Settings  # noqa: E402
from canvasgen.services.backend import BackendResult  # noqa: E402
from canvasgen.services.provider_config import ProviderConfig, ProviderConfigResolver  # noqa: E402

# Long enough (>= 200 chars) to pass as a self-contained base64 blob.
PNG_B64 = "iVBORw0KGgo" + "A" * 240
VIDEO_B64 = "AAAAGGZ0eXBtcDQy"


class FakeBackend:
    """Execution backend answering from a per-command script.

    Each command maps to one response or a list consumed in order (the last
    entry repeats). A response is an envelope dict or an exception to raise.
    """

    def __init__(self, script: dict[str, Any] | None = None) -> None:
        self.script: dict[str, Any] = dict(script or {})
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def commands(self) -> list[str]:
        return [command for command, _ in self.calls]

    def params_for(self, command: str) -> dict[str, Any]:
        for called, params in self.calls:
            if called == command:
                return params
        raise AssertionError(f"{command} was never invoked")

    async def invoke(self, command: str, params: dict[str, Any]) -> BackendResult:
        self.calls.append((command, params))
        if command not in self.script:
            raise AssertionError(f"unexpected backend command {command}")
        entry = self.script[command]
        if isinstance(entry, list):
            response = entry.pop(0) if len(entry) > 1 else entry[0]
        else:
            response = entry
        if isinstance(response, BaseException):
            raise response
        return BackendResult.from_dict(response)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        PROVIDERS=[
            ProviderEntry(id="g1", name="Google AI", protocol="google", api_key="g-key", base_url="https://gemini.test/"),
            ProviderEntry(id="r1", name="Relay", protocol="openai", api_key="r-key", base_url="https://relay.test/"),
        ],
        NODE_PROVIDERS={
            "imageGeneratorPro": "g1",
            "imageGeneratorFast": "r1",
            "videoGenerator": "r1",
            "klingGenerator": "r1",
            "veoGenerator": "r1",
        },
        VIDEO_POLL_MAX_ATTEMPTS=5,
        VIDEO_POLL_INTERVAL=0.0,
    )


@pytest.fixture
def resolver(settings: Settings) -> ProviderConfigResolver:
    return ProviderConfigResolver.from_settings(settings)


@pytest.fixture
def google_config() -> ProviderConfig:
    return ProviderConfig(api_key="g-key", base_url="https://gemini.test/", protocol="google", name="Google AI")


@pytest.fixture
def relay_config() -> ProviderConfig:
    return ProviderConfig(api_key="r-key", base_url="https://relay.test/", protocol="openai", name="Relay")


class CancellingBackend(FakeBackend):
    """Fires ``token`` while ``cancel_on`` is in flight, then answers from the script."""

    def __init__(self, token, cancel_on: str, script: dict[str, Any] | None = None) -> None:
        super().__init__(script)
        self.token = token
        self.cancel_on = cancel_on

    async def invoke(self, command: str, params: dict[str, Any]) -> BackendResult:
        if command == self.cancel_on:
            self.token.cancel()
        return await super().invoke(command, params)
