"""
Pytest test module for the API routers.

Routers run inside the real application through fastapi.testclient.TestClient.
Settings, the survey API client, the key-value store and the session registry
are replaced through `app.dependency_overrides`, with the survey API scripted
by FakeSurveyApi.

Test Classes:
- TestServiceEndpoints: /health and /
- TestQuotaEndpoints: validation, screening, conversion, persistence
- TestVendorEndpoints: classification, allocation checks, question grouping
- TestRespondentEndpoints: qualification flow keyed by share token
- TestSurveyEndpoints: publication and last-survey hand-off
"""

import json
from typing import Any, Dict, Iterator

import httpx
import pytest
from fastapi.testclient import TestClient

from quotagate.core.config import Settings
from quotagate.core.dependencies import (
    get_oracle,
    get_session_registry,
    get_settings_dependency,
    get_store,
)
from quotagate.core.storage import InMemoryKeyValueStore
from quotagate.main import app
from quotagate.models.schemas import QuotaModel
from quotagate.services.qualification import ProtocolRegistry
from quotagate.services.quota_oracle import QuotaOracleClient
from quotagate.tests.fakes import API_BASE_URL, FakeSurveyApi, script_respondent_flow


@pytest.fixture
def client(fake_api: FakeSurveyApi, test_settings: Settings) -> Iterator[TestClient]:
    http_client = httpx.AsyncClient(base_url=API_BASE_URL, transport=httpx.MockTransport(fake_api))
    store = InMemoryKeyValueStore()
    registry = ProtocolRegistry()

    app.dependency_overrides[get_settings_dependency] = lambda: test_settings
    app.dependency_overrides[get_oracle] = lambda: QuotaOracleClient(http_client, test_settings)
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_session_registry] = lambda: registry

    with TestClient(app) as test_client:
        yield test_client
        test_client.portal.call(registry.close_all)
        test_client.portal.call(http_client.aclose)

    app.dependency_overrides.clear()


CATEGORY_CATALOG = {"categories": [
    {"id": "cat-auto", "name": "Automotive"},
    {"id": "cat-travel", "name": "Travel"},
    {"id": "cat-food", "name": "Food & Drink"},
]}


def _quota_body(model: QuotaModel, **extra: Any) -> Dict[str, Any]:
    body = {"quota": model.model_dump(mode="json"), "categories": []}
    body.update(extra)
    return body


# =============================================================================
# Test Class: TestServiceEndpoints
# =============================================================================

class TestServiceEndpoints:

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_root(self, client: TestClient) -> None:
        body = client.get("/").json()

        assert body["name"] == "Quota Gate API"
        assert body["docs"] == "/docs"


# =============================================================================
# Test Class: TestQuotaEndpoints
# =============================================================================

class TestQuotaEndpoints:

    def test_validate_reports_errors_as_values(self, client: TestClient, gender_split_model: QuotaModel) -> None:
        model = gender_split_model.model_copy(update={"totalTarget": 90})

        response = client.post("/quotas/validate", json=model.model_dump(mode="json"))

        assert response.status_code == 200
        body = response.json()
        assert body["valid"] is False
        assert body["errors"][0]["code"] == "COUNT_SUM_MISMATCH"
        assert body["errors"][0]["message"] == "Gender count sum (100) must equal total (90)"

    def test_screening_converges(self, client: TestClient, gender_split_model: QuotaModel) -> None:
        first = client.post("/quotas/screening", json=_quota_body(gender_split_model)).json()

        assert first["changed"] is True
        assert len(first["screeningQuestions"][0]["options"]) == 4

        model = QuotaModel.model_validate(
            {**gender_split_model.model_dump(mode="json"), "screeningQuestions": first["screeningQuestions"]}
        )
        second = client.post("/quotas/screening", json=_quota_body(model)).json()

        assert second["changed"] is False
        assert second["screeningQuestions"] == first["screeningQuestions"]

    def test_convert(self, client: TestClient, gender_split_model: QuotaModel) -> None:
        response = client.post(
            "/quotas/convert",
            json=_quota_body(gender_split_model, dimension="gender", quotaType="PERCENTAGE"),
        )

        assert response.status_code == 200
        gender = response.json()["dimensions"]["gender"]
        assert [g["target"]["target_percentage"] for g in gender] == [50, 50]

    def test_convert_without_total_is_400(self, client: TestClient, gender_split_model: QuotaModel) -> None:
        model = gender_split_model.model_copy(update={"totalTarget": 0})

        response = client.post("/quotas/convert", json=_quota_body(model, dimension="gender", quotaType="PERCENTAGE"))

        assert response.status_code == 400

    def test_new_quota_uses_configured_total(self, client: TestClient, test_settings: Settings) -> None:
        test_settings.default_total_target = 250

        response = client.post("/quotas/new", json={"categories": CATEGORY_CATALOG["categories"]})

        model = QuotaModel.model_validate(response.json())
        assert model.totalTarget == 250
        assert len(model.dimensions.age) == 6
        assert [c.surveyCategoryId for c in model.dimensions.category] == ["cat-auto", "cat-travel", "cat-food"]
        assert client.post("/quotas/new", json={"totalTarget": 40}).json()["totalTarget"] == 40

    def test_toggle_uses_configured_item_target(
        self,
        client: TestClient,
        test_settings: Settings,
        gender_split_model: QuotaModel,
    ) -> None:
        test_settings.default_item_target = 25
        body = _quota_body(gender_split_model, dimension="gender", index=1)

        off = client.post("/quotas/toggle", json=body)
        assert off.status_code == 200
        assert [g["target"]["target_count"] for g in off.json()["dimensions"]["gender"]] == [50, 0]

        on = client.post("/quotas/toggle", json={**body, "quota": off.json()})
        model = QuotaModel.model_validate(on.json())
        assert [g.target_count for g in model.dimensions.gender] == [50, 25]
        assert client.post("/quotas/toggle", json={**body, "index": 9}).status_code == 400

    def test_persisted_encoding_omits_nulls(self, client: TestClient, gender_split_model: QuotaModel) -> None:
        body = client.post("/quotas/persisted", json=gender_split_model.model_dump(mode="json")).json()

        assert body["totaltarget"] == 100
        assert "vendorId" not in body
        assert body["screeningquestions"][0]["optionTargets"][0] == {
            "optionId": "MALE", "target": 50, "quotaType": "COUNT"
        }

    def test_save_invalid_model_is_400(
        self,
        client: TestClient,
        gender_split_model: QuotaModel,
        fake_api: FakeSurveyApi,
    ) -> None:
        model = gender_split_model.model_copy(update={"totalTarget": 90})

        response = client.put("/quotas/survey-1", json=_quota_body(model))

        assert response.status_code == 400
        assert response.json()["detail"]["errors"][0]["code"] == "COUNT_SUM_MISMATCH"
        assert fake_api.requests == []

    def test_save_then_load(self, client: TestClient, gender_split_model: QuotaModel, fake_api: FakeSurveyApi) -> None:
        stored: Dict[str, Any] = {}

        def save(request: httpx.Request) -> httpx.Response:
            stored.update(json.loads(request.content))
            return httpx.Response(200, json={"success": True})

        fake_api.on("PUT", "/api/surveys/survey-1/quota", handler=save)
        fake_api.on("GET", "/api/surveys/survey-1/quota", handler=lambda r: httpx.Response(200, json=stored))
        fake_api.on("GET", "/api/categories", CATEGORY_CATALOG)

        saved = client.put("/quotas/survey-1", json=_quota_body(gender_split_model))
        assert saved.status_code == 200
        assert stored["screeningquestions"][0]["questionId"] == "screening_gender"

        loaded = client.get("/quotas/survey-1")
        assert loaded.status_code == 200
        model = QuotaModel.model_validate(loaded.json())
        assert len(model.dimensions.gender) == 4
        assert [g.target_count for g in model.dimensions.gender[:2]] == [50, 50]

    def test_load_offers_full_category_catalog(self, client: TestClient, fake_api: FakeSurveyApi) -> None:
        fake_api.on("GET", "/api/surveys/survey-1/quota", {"data": {
            "totaltarget": 100,
            "enabled": True,
            "screeningquestions": [{
                "questionId": "screening_category",
                "questionText": "Which industry do you work in?",
                "optionTargets": [{"optionId": "cat-auto", "target": 100, "quotaType": "COUNT"}],
            }],
        }})
        fake_api.on("GET", "/api/categories", CATEGORY_CATALOG)

        response = client.get("/quotas/survey-1")

        assert response.status_code == 200
        model = QuotaModel.model_validate(response.json())
        assert [c.surveyCategoryId for c in model.dimensions.category] == ["cat-auto", "cat-travel", "cat-food"]
        assert [c.target_count for c in model.dimensions.category] == [100, 0, 0]
        assert model.dimensions.category[0].categoryName == "Automotive"
        question = next(q for q in model.screeningQuestions if q.id == "screening_category")
        assert question.question_text == "Which industry do you work in?"
        assert [o.value for o in question.options] == ["cat-auto", "cat-travel", "cat-food"]

    def test_catalog_failure_is_502(self, client: TestClient, fake_api: FakeSurveyApi) -> None:
        fake_api.on("GET", "/api/surveys/survey-1/quota", {"totaltarget": 0, "screeningquestions": []})
        fake_api.on("GET", "/api/categories", {"message": "catalog unavailable"}, status_code=503)

        response = client.get("/quotas/survey-1")

        assert response.status_code == 502
        assert response.json()["detail"] == "catalog unavailable"

    def test_load_missing_quota_is_404(self, client: TestClient) -> None:
        assert client.get("/quotas/survey-404").status_code == 404

    def test_survey_api_failure_is_502(self, client: TestClient, fake_api: FakeSurveyApi) -> None:
        fake_api.on("GET", "/api/surveys/survey-1/quota", {"message": "db down"}, status_code=500)

        response = client.get("/quotas/survey-1")

        assert response.status_code == 502
        assert response.json()["detail"] == "db down"


# =============================================================================
# Test Class: TestVendorEndpoints
# =============================================================================

INCOME_QUESTION = {
    "id": "vq-income",
    "question_key": "HOUSEHOLD_INCOME",
    "question_text": "What is your household income?",
    "question_type": "SINGLE_SELECT",
    "category": [{"category_name": "Finance", "is_primary": True}],
}


class TestVendorEndpoints:

    def test_classify(self, client: TestClient) -> None:
        response = client.post("/vendors/classify", json={"id": "q", "questionKey": "AGE"})

        assert response.json() == {"kind": "RANGE"}

    def test_validate_balanced_then_unbalanced(self, client: TestClient) -> None:
        criteria = {
            "desiredCompletes": 20,
            "selectedOptionIds": ["opt-low", "opt-high"],
            "optionQuotas": {"opt-low": 12, "opt-high": 8},
        }
        body = {"vendorId": "v1", "questions": [INCOME_QUESTION], "criteria": {"vq-income": criteria}}

        assert client.post("/vendors/validate", json=body).json() == {"valid": True, "error": None}

        criteria["optionQuotas"]["opt-high"] = 9
        result = client.post("/vendors/validate", json=body).json()

        assert result["valid"] is False
        assert "What is your household income?" in result["error"]
        assert "(21)" in result["error"] and "(20)" in result["error"]

    def test_allocation(self, client: TestClient) -> None:
        body = {
            "question": INCOME_QUESTION,
            "criteria": {"selectedOptionIds": ["opt-low"], "optionQuotas": {"opt-low": 5}},
        }

        summary = client.post("/vendors/allocation", json=body).json()

        assert summary["kind"] == "OPTION_BASED"
        assert summary["allocated"] == 5

    def test_fetch_vendor_questions_grouped(self, client: TestClient, fake_api: FakeSurveyApi) -> None:
        fake_api.on("GET", "/api/vendors/v1/questions", {"data": [
            INCOME_QUESTION,
            {"id": "vq-age", "question_key": "AGE", "question_text": "Age?"},
        ]})

        groups = client.get("/vendors/v1/questions", params={"countryCode": "US"}).json()

        assert [g["groupName"] for g in groups] == ["Finance", "Other"]
        assert fake_api.requests[0].url.params["countryCode"] == "US"

    def test_vendor_api_failure_is_502(self, client: TestClient) -> None:
        assert client.get("/vendors/v404/questions").status_code == 502


# =============================================================================
# Test Class: TestRespondentEndpoints
# =============================================================================

class TestRespondentEndpoints:

    def test_full_flow(self, client: TestClient, fake_api: FakeSurveyApi) -> None:
        script_respondent_flow(fake_api)

        started = client.post("/respondents/tok-1/start").json()
        assert started["state"] == "SCREENING"
        assert started["currentScreeningQuestion"]["id"] == "screening_gender"

        answered = client.post(
            "/respondents/tok-1/screening/answer",
            json={"questionId": "screening_gender", "optionId": "gender_MALE"},
        ).json()
        assert answered["canGoNext"] is True

        assert client.post("/respondents/tok-1/screening/next").json()["state"] == "QUALIFIED"
        assert client.post("/respondents/tok-1/begin").json()["state"] == "TAKING_SURVEY"
        client.post("/respondents/tok-1/answers", json={"questionId": "q1", "value": "Great"})

        submitted = client.post("/respondents/tok-1/submit").json()

        assert submitted["state"] == "COMPLETION_MARKED"
        assert submitted["redirectUrl"] == "https://vendor.test/complete"
        assert len(fake_api.calls("POST", "/api/quota/survey-1/respondents/r1/complete")) == 1
        assert client.get("/respondents/tok-1").status_code == 404
        assert client.post("/respondents/tok-1/start").json()["state"] == "ALREADY_SUBMITTED"

    def test_not_qualified_is_a_state_not_an_error(self, client: TestClient, fake_api: FakeSurveyApi) -> None:
        script_respondent_flow(fake_api, verdict={"qualified": False})
        client.post("/respondents/tok-1/start")
        client.post(
            "/respondents/tok-1/screening/answer",
            json={"questionId": "screening_gender", "optionId": "gender_FEMALE"},
        )

        response = client.post("/respondents/tok-1/screening/next")

        assert response.status_code == 200
        assert response.json()["state"] == "NOT_QUALIFIED"
        assert response.json()["redirectUrl"] == "https://vendor.test/terminate"
        assert client.get("/respondents/tok-1").status_code == 404

    def test_unknown_session_is_404(self, client: TestClient) -> None:
        assert client.get("/respondents/tok-x").status_code == 404

    def test_wrong_state_is_409(self, client: TestClient, fake_api: FakeSurveyApi) -> None:
        script_respondent_flow(fake_api)
        client.post("/respondents/tok-1/start")

        assert client.post("/respondents/tok-1/begin").status_code == 409
        assert client.post("/respondents/tok-1/screening/next").status_code == 409

    def test_bad_answers_are_400(self, client: TestClient, fake_api: FakeSurveyApi) -> None:
        script_respondent_flow(fake_api)
        client.post("/respondents/tok-1/start")

        response = client.post(
            "/respondents/tok-1/screening/answer",
            json={"questionId": "screening_gender", "optionId": "gender_NOPE"},
        )
        assert response.status_code == 400

        client.post(
            "/respondents/tok-1/screening/answer",
            json={"questionId": "screening_gender", "optionId": "gender_MALE"},
        )
        client.post("/respondents/tok-1/screening/next")
        client.post("/respondents/tok-1/begin")

        response = client.post("/respondents/tok-1/submit")
        assert response.status_code == 400
        assert response.json()["detail"]["missing"] == ["q1"]

    def test_unload(self, client: TestClient, fake_api: FakeSurveyApi) -> None:
        script_respondent_flow(fake_api)
        client.post("/respondents/tok-1/start")

        assert client.post("/respondents/tok-1/unload").json() == {"notified": False}

    def test_load_error_is_reported_in_snapshot(self, client: TestClient) -> None:
        response = client.post("/respondents/tok-missing/start")

        assert response.status_code == 200
        assert response.json()["state"] == "LOAD_ERROR"
        assert response.json()["terminationReason"] == "generic"


# =============================================================================
# Test Class: TestSurveyEndpoints
# =============================================================================

class TestSurveyEndpoints:

    def test_publish_then_read_last_once(self, client: TestClient, fake_api: FakeSurveyApi) -> None:
        fake_api.on("POST", "/api/surveys/survey-1/generate-link", {"data": {"publicUrl": "https://s.test/abc"}})

        published = client.post(
            "/surveys/survey-1/publish",
            json={"surveyData": {"id": "survey-1"}, "title": "Pulse", "audience": 100},
        )

        assert published.status_code == 200
        assert published.json()["publicUrl"] == "https://s.test/abc"

        last = client.get("/surveys/last")
        assert last.status_code == 200
        assert last.json() == {"surveyData": {"id": "survey-1"}, "audience": 100, "title": "Pulse"}

        assert client.get("/surveys/last").status_code == 404

    def test_publish_falls_back_to_local_link(self, client: TestClient) -> None:
        body = client.post("/surveys/survey-9/publish", json={"surveyData": {}}).json()

        assert body["publicUrl"] == "http://app.test/survey/survey-9"
        assert body["usedFallbackLink"] is True
