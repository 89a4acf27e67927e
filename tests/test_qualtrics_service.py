"""
Qualtrics client tests - requests are answered by httpx.MockTransport.
"""

import json

import httpx
import pytest

from app.config import Settings
from app.schemas import SurveyDocument, SurveyQuestion
from app.services import QualtricsCredentials, QualtricsService
from app.services.errors import PlatformCallFailed
from app.services.qualtrics_service import build_question_payload, map_question_type


CREDENTIALS = QualtricsCredentials(api_token="qt-token", datacenter="iad1", brand_id="brand-1")

DOCUMENT = SurveyDocument.model_validate({
    "title": "Product Feedback",
    "questions": [
        {"type": "multiple_choice", "text": "Which plan?", "choices": ["Free", "Pro"],
         "validation": {"required": True}},
        {"type": "rating", "text": "Rate us", "choices": ["1", "2", "3", "4", "5"]},
        {"type": "text", "text": "Comments?"},
    ],
})


class FakeQualtrics:
    """Records requests; fails the question add numbered ``fail_question``."""

    def __init__(self, survey_id="SV_abc", fail_question=None, create_status=200, whoami_status=200):
        self.survey_id = survey_id
        self.fail_question = fail_question
        self.create_status = create_status
        self.whoami_status = whoami_status
        self.requests = []
        self.questions_added = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("/whoami"):
            return httpx.Response(self.whoami_status, json={"result": {"userId": "UR_1"}})

        if path.endswith("/survey-definitions"):
            if self.create_status != 200:
                return httpx.Response(self.create_status, json={"meta": {"error": "nope"}})
            return httpx.Response(200, json={"result": {"SurveyID": self.survey_id}})

        if path.endswith("/questions"):
            self.questions_added += 1
            if self.questions_added == self.fail_question:
                return httpx.Response(500, json={"meta": {"error": "boom"}})
            return httpx.Response(200, json={"result": {"QuestionID": f"QID{self.questions_added}"}})

        return httpx.Response(404)


def _service(fake: FakeQualtrics) -> QualtricsService:
    return QualtricsService(Settings(), transport=httpx.MockTransport(fake))


# ── Payload mapping ─────────────────────────────────────

class TestQuestionMapping:
    def test_type_map(self):
        assert map_question_type("multiple_choice") == "MC"
        assert map_question_type("text") == "TE"
        assert map_question_type("rating") == "Matrix"
        assert map_question_type("slider") == "TE"

    def test_payload_shape(self):
        question = SurveyQuestion(
            type="multiple_choice", text="Which plan?", choices=["Free", "Pro"],
            validation={"required": True},
        )
        assert build_question_payload(question) == {
            "questionText": "Which plan?",
            "questionType": "MC",
            "choices": [{"text": "Free"}, {"text": "Pro"}],
            "validation": {"required": True},
        }

    def test_payload_without_choices(self):
        payload = build_question_payload(SurveyQuestion(type="text", text="Comments?"))
        assert payload == {"questionText": "Comments?", "questionType": "TE"}


# ── Credential verification ─────────────────────────────

class TestVerifyCredentials:
    @pytest.mark.asyncio
    async def test_accepted(self):
        fake = FakeQualtrics()
        assert await _service(fake).verify_credentials(CREDENTIALS) is True

        request = fake.requests[0]
        assert str(request.url) == "https://iad1.qualtrics.com/API/v3/whoami"
        assert request.headers["X-API-TOKEN"] == "qt-token"

    @pytest.mark.asyncio
    async def test_rejected(self):
        fake = FakeQualtrics(whoami_status=401)
        assert await _service(fake).verify_credentials(CREDENTIALS) is False

    @pytest.mark.asyncio
    async def test_bad_datacenter_never_calls_out(self):
        fake = FakeQualtrics()
        creds = QualtricsCredentials(api_token="t", datacenter="evil.com/x?", brand_id="b")
        assert await _service(fake).verify_credentials(creds) is False
        assert fake.requests == []


# ── Survey creation ─────────────────────────────────────

class TestCreateSurvey:
    @pytest.mark.asyncio
    async def test_creates_survey_then_questions_in_order(self):
        fake = FakeQualtrics(survey_id="SV_abc")
        survey_id = await _service(fake).create_survey(CREDENTIALS, DOCUMENT)

        assert survey_id == "SV_abc"
        assert len(fake.requests) == 4

        create = fake.requests[0]
        assert create.url.path == "/API/v3/survey-definitions"
        assert json.loads(create.content) == {"name": "Product Feedback", "projectCategory": "brand-1"}

        added = [json.loads(r.content) for r in fake.requests[1:]]
        assert all(r.url.path == "/API/v3/survey-definitions/SV_abc/questions" for r in fake.requests[1:])
        assert [q["questionText"] for q in added] == ["Which plan?", "Rate us", "Comments?"]
        assert [q["questionType"] for q in added] == ["MC", "Matrix", "TE"]

    @pytest.mark.asyncio
    async def test_survey_id_from_id_field(self):
        def handler(request):
            if request.url.path.endswith("/survey-definitions"):
                return httpx.Response(200, json={"result": {"id": "SV_alt"}})
            return httpx.Response(200, json={"result": {}})

        service = QualtricsService(Settings(), transport=httpx.MockTransport(handler))
        assert await service.create_survey(CREDENTIALS, DOCUMENT) == "SV_alt"

    @pytest.mark.asyncio
    async def test_creation_failure(self):
        fake = FakeQualtrics(create_status=403)
        with pytest.raises(PlatformCallFailed) as exc_info:
            await _service(fake).create_survey(CREDENTIALS, DOCUMENT)

        assert exc_info.value.remote_survey_id is None
        assert "HTTP 403" in exc_info.value.message
        assert len(fake.requests) == 1

    @pytest.mark.asyncio
    async def test_question_failure_stops_and_reports_partial_survey(self):
        fake = FakeQualtrics(survey_id="SV_part", fail_question=2)
        with pytest.raises(PlatformCallFailed) as exc_info:
            await _service(fake).create_survey(CREDENTIALS, DOCUMENT)

        assert exc_info.value.remote_survey_id == "SV_part"
        assert "question 2" in exc_info.value.message
        # create + two question adds; the third is never attempted
        assert len(fake.requests) == 3

    @pytest.mark.asyncio
    async def test_missing_survey_id(self):
        def handler(request):
            return httpx.Response(200, json={"result": {}})

        service = QualtricsService(Settings(), transport=httpx.MockTransport(handler))
        with pytest.raises(PlatformCallFailed):
            await service.create_survey(CREDENTIALS, DOCUMENT)

    @pytest.mark.asyncio
    async def test_non_object_body(self):
        def handler(request):
            return httpx.Response(200, json=[{"id": "SV_1"}])

        service = QualtricsService(Settings(), transport=httpx.MockTransport(handler))
        with pytest.raises(PlatformCallFailed) as exc_info:
            await service.create_survey(CREDENTIALS, DOCUMENT)

        assert exc_info.value.remote_survey_id is None
        assert "unexpected response body" in exc_info.value.message
