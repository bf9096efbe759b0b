import pytest
from fastapi.testclient import TestClient

import web_app
from semiologix.cases import CaseStore

from conftest import (
    AUDIO,
    DETAILS,
    DIAGNOSES,
    EVALUATION,
    FEEDBACK,
    PARSING,
    PRONTUARY,
    TIMELINE,
    TRAINING_CASE,
)
from test_session import EVALUATION_ANSWER, TRAINING_CASE_ANSWER

DETAIL_ANSWER = {
    "checklist": [{"item": "Dor torácica irradiando", "rationale": "Isquemia."}],
    "plan": {"confirmation_tests": ["ECG"], "suggested_medications": [], "referrals": []},
}


@pytest.fixture
def client_for(scripted, tmp_path):
    store = CaseStore(str(tmp_path / "semiologix.json"))

    def build(routes: dict):
        service, models = scripted(routes)
        web_app.app.dependency_overrides[web_app.get_store] = lambda: store
        web_app.app.dependency_overrides[web_app.get_service] = lambda: service
        return TestClient(web_app.app), models

    yield build
    web_app.app.dependency_overrides.clear()
    web_app.sessions.clear()
    web_app.investigations.clear()


@pytest.fixture
def analysis_routes(diagnoses_answer, timeline_answer):
    return {DIAGNOSES: diagnoses_answer, TIMELINE: timeline_answer, DETAILS: DETAIL_ANSWER}


def new_session(client, training_mode=False):
    response = client.post("/api/sessions", params={"training_mode": training_mode})
    assert response.status_code == 200
    return response.json()["thread_id"]


def analyzed_session(client, anamnesis):
    thread_id = new_session(client)
    client.post(f"/api/sessions/{thread_id}/update_anamnesis", json={"fields": anamnesis.model_dump()})
    response = client.post(f"/api/sessions/{thread_id}/analyze")
    assert response.status_code == 200
    return thread_id, response.json()["state"]


def test_analyze_flow(client_for, analysis_routes, chest_pain_anamnesis):
    client, _ = client_for(analysis_routes)
    thread_id, state = analyzed_session(client, chest_pain_anamnesis)

    assert state["error"] is None
    assert [d["name"] for d in state["diagnoses"]] == ["Síndrome Coronariana Aguda", "Pericardite"]
    assert state["timeline"][0]["time"] == "Há 2 horas"
    assert client.get(f"/api/sessions/{thread_id}").json()["state"] == state


def test_insufficient_data_is_reported_in_state(client_for):
    client, models = client_for({})
    thread_id = new_session(client)
    response = client.post(f"/api/sessions/{thread_id}/analyze")
    assert response.status_code == 200
    assert "Queixa Principal" in response.json()["state"]["error"]
    assert models.calls == []


def test_unknown_session_and_action(client_for):
    client, _ = client_for({})
    assert client.post("/api/sessions/nope/analyze").status_code == 404
    thread_id = new_session(client)
    assert client.post(f"/api/sessions/{thread_id}/explode").status_code == 404


def test_training_hides_answer_until_evaluation(client_for, diagnoses_answer, timeline_answer):
    client, _ = client_for({TRAINING_CASE: TRAINING_CASE_ANSWER, EVALUATION: EVALUATION_ANSWER,
                            DIAGNOSES: diagnoses_answer, TIMELINE: timeline_answer})
    thread_id = new_session(client, training_mode=True)

    state = client.post(f"/api/sessions/{thread_id}/generate_case",
                        json={"difficulty": "Fácil", "specialty": "Cardiologia"}).json()["state"]
    assert state["training_mode"]
    assert "correct_diagnosis" not in state["anamnesis"]
    assert "hidden_lab_results" not in state["anamnesis"]

    state = client.post(f"/api/sessions/{thread_id}/evaluate",
                        json={"hypotheses": {"principal": "IAM"}, "plan": {}}).json()["state"]
    assert state["evaluation"]["score"] == 85
    assert state["anamnesis"]["correct_diagnosis"] == "Infarto agudo do miocárdio"


def test_upload_anamnesis_file(client_for):
    client, models = client_for({PARSING: {"age": "45", "chief_complaint": "Tosse"}})
    thread_id = new_session(client)

    response = client.post(f"/api/sessions/{thread_id}/upload/anamnesis",
                           files={"file": ("anamnese.txt", "Homem de 45 anos com tosse.".encode(), "text/plain")})

    assert response.status_code == 200
    assert response.json()["state"]["anamnesis"]["chief_complaint"] == "Tosse"
    assert "Homem de 45 anos com tosse." in models.calls[0]["human"]


def test_upload_rejects_bad_files(client_for):
    client, models = client_for({})
    thread_id = new_session(client)

    unsupported = client.post(f"/api/sessions/{thread_id}/upload/exam",
                              files={"file": ("laudo.docx", b"x", "application/octet-stream")})
    empty = client.post(f"/api/sessions/{thread_id}/upload/exam",
                        files={"file": ("laudo.txt", b"   ", "text/plain")})
    audio = client.post(f"/api/sessions/{thread_id}/upload/audio",
                        files={"file": ("gravacao.mp4", b"x", "video/mp4")})

    assert unsupported.status_code == 415
    assert empty.status_code == 422
    assert audio.status_code == 415
    assert models.calls == []


def test_upload_audio(client_for):
    client, models = client_for({AUDIO: {"chief_complaint": "Cefaleia"}})
    thread_id = new_session(client)
    response = client.post(f"/api/sessions/{thread_id}/upload/audio",
                           files={"file": ("gravacao.webm", b"audio", "audio/webm")})
    assert response.json()["state"]["anamnesis"]["chief_complaint"] == "Cefaleia"
    assert models.calls[0]["human"][0]["data"] == "YXVkaW8="


def test_detail_investigation(client_for, analysis_routes, chest_pain_anamnesis):
    client, _ = client_for(analysis_routes)
    thread_id, _ = analyzed_session(client, chest_pain_anamnesis)

    invalid = client.post(f"/api/sessions/{thread_id}/details", json={"names": ["Gripe"]})
    assert invalid.status_code == 400

    snapshot = client.post(f"/api/sessions/{thread_id}/details", params={"wait": True},
                           json={"names": ["Síndrome Coronariana Aguda", "Pericardite"]}).json()
    assert not snapshot["loading"]
    assert snapshot["checklist"] == [{
        "item": "Dor torácica irradiando", "rationale": "Isquemia.",
        "sources": ["Síndrome Coronariana Aguda", "Pericardite"], "present": True,
    }]
    assert snapshot["plan"]["confirmation_tests"] == ["ECG"]

    assert client.get(f"/api/sessions/{thread_id}/details").json()["generation"] == snapshot["generation"]
    assert client.delete(f"/api/sessions/{thread_id}/details").status_code == 200
    assert client.get(f"/api/sessions/{thread_id}/details").json()["checklist"] == []


def test_reanalysis_closes_detail_view(client_for, analysis_routes, chest_pain_anamnesis):
    updated = {**chest_pain_anamnesis.model_dump(), "physical_exam": "Sudorese fria"}
    client, _ = client_for({**analysis_routes, FEEDBACK: updated})
    thread_id, _ = analyzed_session(client, chest_pain_anamnesis)
    opened = client.post(f"/api/sessions/{thread_id}/details", params={"wait": True},
                         json={"names": ["Síndrome Coronariana Aguda"]}).json()

    response = client.post(f"/api/sessions/{thread_id}/reevaluate", json={"feedback": {"checklist_updates": {}}})
    assert response.status_code == 200

    snapshot = client.get(f"/api/sessions/{thread_id}/details").json()
    assert snapshot["generation"] > opened["generation"]
    assert snapshot["selected"] == []
    assert snapshot["checklist"] == []

    reopened = client.post(f"/api/sessions/{thread_id}/details", params={"wait": True},
                           json={"names": ["Pericardite"]}).json()
    client.post(f"/api/sessions/{thread_id}/analyze")
    assert client.get(f"/api/sessions/{thread_id}/details").json()["generation"] > reopened["generation"]


def test_custom_diagnosis_is_investigated_alone(client_for, analysis_routes, chest_pain_anamnesis):
    client, models = client_for(analysis_routes)
    thread_id, _ = analyzed_session(client, chest_pain_anamnesis)

    snapshot = client.post(f"/api/sessions/{thread_id}/details", params={"wait": True},
                           json={"names": ["Pericardite"], "custom": "  Febre maculosa "}).json()

    assert snapshot["selected"] == [{
        "name": "Febre maculosa", "probability": 0,
        "rationale": "Diagnóstico inserido manualmente para investigação.",
    }]
    assert snapshot["plan"]["confirmation_tests"] == ["ECG"]
    assert '"Febre maculosa"' in models.calls_to(DETAILS)[0]["human"]

    blank = client.post(f"/api/sessions/{thread_id}/details", json={"custom": "   "})
    assert blank.status_code == 400


def test_invalid_field_values_do_not_break_later_actions(client_for):
    client, models = client_for({})
    thread_id = new_session(client)

    state = client.post(f"/api/sessions/{thread_id}/update_anamnesis",
                        json={"fields": {"chief_complaint": None, "hpi": 12345}}).json()["state"]
    assert state["anamnesis"]["chief_complaint"] == ""
    assert state["anamnesis"]["hpi"] == "12345"

    assert client.post(f"/api/sessions/{thread_id}/save").status_code == 400
    analyzed = client.post(f"/api/sessions/{thread_id}/analyze")
    assert analyzed.status_code == 200
    assert "Queixa Principal" in analyzed.json()["state"]["error"]
    assert models.calls == []

def test_saved_cases(client_for, analysis_routes, chest_pain_anamnesis):
    client, _ = client_for(analysis_routes)
    thread_id, _ = analyzed_session(client, chest_pain_anamnesis)

    saved = client.post(f"/api/sessions/{thread_id}/save")
    assert saved.status_code == 200
    case_id = saved.json()["id"]
    assert [case["id"] for case in client.get("/api/cases").json()] == [case_id]

    other = new_session(client)
    assert client.post(f"/api/sessions/{other}/save").status_code == 400
    loaded = client.post(f"/api/cases/{case_id}/load", params={"thread_id": other}).json()["state"]
    assert loaded["anamnesis"]["chief_complaint"] == chest_pain_anamnesis.chief_complaint
    assert loaded["diagnoses"][0]["name"] == "Síndrome Coronariana Aguda"

    assert client.delete(f"/api/cases/{case_id}").status_code == 200
    assert client.delete(f"/api/cases/{case_id}").status_code == 404
    assert client.get("/api/cases").json() == []


def test_api_key(client_for):
    client, _ = client_for({})
    assert client.put("/api/api-key", json={"api_key": "  "}).status_code == 400
    assert client.put("/api/api-key", json={"api_key": "abc"}).json() == {"configured": True}
    assert client.get("/api/api-key").json() == {"configured": True}


def test_summary_errors_map_to_status(client_for, monkeypatch):
    monkeypatch.setattr("semiologix.retry.backoff_delay", lambda *args: 0)
    client, _ = client_for({PRONTUARY: ["Resumo do caso.", RuntimeError("boom"), Exception("429 rate limit")]})

    assert client.post("/api/summary", json={"text": "# QP\nDor"}).json() == {"summary": "Resumo do caso."}
    assert client.post("/api/summary", json={"text": "# QP\nDor"}).status_code == 502
    assert client.post("/api/summary", json={"text": "# QP\nDor"}).status_code == 503


def test_export_and_vitals(client_for, analysis_routes, chest_pain_anamnesis):
    client, _ = client_for(analysis_routes)
    thread_id, _ = analyzed_session(client, chest_pain_anamnesis)

    response = client.post(f"/api/sessions/{thread_id}/export")
    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert "anamnese_Dor_no_peito_h%C3%A1_2_ho.pdf" in response.headers["content-disposition"]
    assert response.content.startswith(b"%PDF")

    summary = client.get(f"/api/sessions/{thread_id}/vitals").json()
    assert summary["vitals"]["PA"]["status"] == "altered"
    assert [(d["name"], d["band"]) for d in summary["top_diagnoses"]] == [
        ("Síndrome Coronariana Aguda", "moderate"), ("Pericardite", "low"), ("Dissecção de Aorta", "low")]
