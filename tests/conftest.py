"""Shared fixtures for tests."""

import pytest
import pytest_asyncio

from hubproxy.context import HubContext
from hubproxy.registry.models import HubConfig
from tests.fixtures.fake_hub import (
    INVALID_CREDENTIAL,
    USERNAME,
    VALID_CREDENTIAL,
    FakeClock,
    FakeDockerHub,
)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_hub() -> FakeDockerHub:
    """Fake Docker Hub with the sample repositories installed."""
    return FakeDockerHub().install_samples()


@pytest.fixture
def anonymous_config() -> HubConfig:
    return HubConfig()


@pytest.fixture
def credential_config() -> HubConfig:
    return HubConfig(username=USERNAME, credential=VALID_CREDENTIAL)


@pytest.fixture
def invalid_credential_config() -> HubConfig:
    return HubConfig(username=USERNAME, credential=INVALID_CREDENTIAL)


@pytest_asyncio.fixture
async def ctx(anonymous_config, fake_hub, fake_clock):
    """Context without a credential, talking to the fake hub."""
    context = HubContext.create(anonymous_config, transport=fake_hub.transport, clock=fake_clock)
    yield context
    await context.aclose()


@pytest_asyncio.fixture
async def authed_ctx(credential_config, fake_hub, fake_clock):
    """Context with alice's valid credential."""
    context = HubContext.create(credential_config, transport=fake_hub.transport, clock=fake_clock)
    yield context
    await context.aclose()
