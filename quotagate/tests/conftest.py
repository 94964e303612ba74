"""
Pytest Configuration and Shared Fixtures for Quota Gate Tests.

This module provides fixtures and configuration for all backend tests, supporting:
- Async test execution with pytest-asyncio
- Test settings that never read a developer's .env file
- An in-memory key-value store
- Sample quota models and category catalogs
- A scripted fake survey API built on httpx.MockTransport, so the oracle
  client, the respondent protocol and the routers run against real HTTP
  request/response objects without a network

Dependencies:
- pytest
- pytest-asyncio
- httpx (MockTransport)
"""

from typing import List

import httpx
import pytest

from quotagate.core.config import Settings
from quotagate.core.storage import InMemoryKeyValueStore
from quotagate.models.schemas import (
    AgeQuota,
    GenderQuota,
    QuotaDimensions,
    QuotaModel,
    SurveyCategory,
)
from quotagate.services.quota_oracle import QuotaOracleClient
from quotagate.tests.fakes import API_BASE_URL, FakeSurveyApi


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """
    Configure custom pytest markers for test organization.

    Custom markers defined:
    - slow: Marks tests as slow (deselect with -m "not slow")
    - integration: Marks end-to-end flows across several modules
    - property: Marks tests asserting a general property over many inputs
    """
    config.addinivalue_line(
        'markers',
        'slow: marks tests as slow (deselect with -m "not slow")'
    )
    config.addinivalue_line(
        'markers',
        'integration: marks end-to-end flows across several modules'
    )
    config.addinivalue_line(
        'markers',
        'property: marks tests asserting a property over many generated inputs'
    )


# ============================================================
# SETTINGS & STORE FIXTURES
# ============================================================

@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        survey_api_url=API_BASE_URL,
        vendor_redirect_base_url=f"{API_BASE_URL}/api",
        public_survey_base_url="http://app.test/survey",
        request_timeout_seconds=2.0,
        auto_restart_delay_seconds=0.01,
    )


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


# ============================================================
# QUOTA MODEL FIXTURES
# ============================================================

@pytest.fixture
def categories() -> List[SurveyCategory]:
    return [
        SurveyCategory(id="cat-auto", name="Automotive"),
        SurveyCategory(id="cat-travel", name="Travel"),
        SurveyCategory(id="cat-food", name="Food & Drink"),
    ]


@pytest.fixture
def gender_split_model() -> QuotaModel:
    """Total 100 split 50/50 between male and female, counts."""
    return QuotaModel(
        enabled=True,
        totalTarget=100,
        dimensions=QuotaDimensions(
            gender=[
                GenderQuota(gender="MALE", target={"quota_type": "COUNT", "target_count": 50}),
                GenderQuota(gender="FEMALE", target={"quota_type": "COUNT", "target_count": 50}),
            ],
        ),
    )


@pytest.fixture
def age_gender_model() -> QuotaModel:
    """Total 200 with an age split (counts) and a gender split (percentages)."""
    return QuotaModel(
        enabled=True,
        totalTarget=200,
        dimensions=QuotaDimensions(
            age=[
                AgeQuota(min_age=18, max_age=24, target_count=80),
                AgeQuota(min_age=25, max_age=34, target_count=120),
            ],
            gender=[
                GenderQuota(gender="MALE", quota_type="PERCENTAGE", target_percentage=40),
                GenderQuota(gender="FEMALE", quota_type="PERCENTAGE", target_percentage=60),
            ],
        ),
    )


# ============================================================
# FAKE SURVEY API
# ============================================================

@pytest.fixture
def fake_api() -> FakeSurveyApi:
    return FakeSurveyApi()


@pytest.fixture
async def http_client(fake_api: FakeSurveyApi):
    """httpx.AsyncClient wired to the fake survey API."""
    async with httpx.AsyncClient(
        base_url=API_BASE_URL,
        transport=httpx.MockTransport(fake_api),
    ) as client:
        yield client


@pytest.fixture
def oracle(http_client: httpx.AsyncClient, test_settings: Settings) -> QuotaOracleClient:
    return QuotaOracleClient(http_client, test_settings)
