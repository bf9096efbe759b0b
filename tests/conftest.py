import json

import pytest
from langchain_core.language_models import FakeListChatModel
from langchain_core.runnables import RunnableLambda

from semiologix.gemini_service import GeminiService
from semiologix.schemas import AnamnesisData

# Substrings identifying each system prompt
DIAGNOSES = "especialista em diagnósticos diferenciais"
DETAILS = "aprofundar a investigação"
FEEDBACK = "integrar novas informações"
TRAINING_CASE = "criando um caso clínico"
INVESTIGATION = "simulador médico realista"
EVALUATION = "preceptor de medicina"
PARSING = "processamento de dados médicos"
AUDIO = "escriba médico de IA"
EXAM_SUMMARY = "processar laudos"
TIMELINE = "análise de texto clínico"
ACADEMIC = "pesquisa médica"
PRONTUARY = "médico experiente e conciso"


class ScriptedModels:
    """
    Model factory answering each call with a fake chat model.

    The answer is picked from the system prompt of the call, so concurrent
    calls get the right answer whatever their order. A route holding a list is
    consumed one answer per call (the last one repeats). Exceptions are raised.
    """

    def __init__(self, routes: dict):
        self.routes = routes
        self.calls = []

    def _answer(self, system: str):
        for key, answer in self.routes.items():
            if key in system:
                break
        else:
            raise AssertionError(f"No scripted answer for prompt: {system[:80]}")
        if isinstance(answer, list):
            answer = answer.pop(0) if len(answer) > 1 else answer[0]
        if isinstance(answer, Exception):
            raise answer
        if not isinstance(answer, str):
            answer = json.dumps(answer, ensure_ascii=False)
        return answer

    def __call__(self, temperature=0.2, api_key=None, json_mode=False, **kwargs):
        call = {"temperature": temperature, "api_key": api_key, "json_mode": json_mode, **kwargs}

        async def respond(messages):
            system = messages[0].content
            call["system"] = system
            call["human"] = messages[-1].content
            self.calls.append(call)
            answer = self._answer(system)
            return await FakeListChatModel(responses=[answer]).ainvoke(messages)

        return RunnableLambda(respond)

    def calls_to(self, key: str) -> list:
        return [call for call in self.calls if key in call["system"]]


@pytest.fixture
def scripted():
    def build(routes: dict):
        models = ScriptedModels(routes)
        return GeminiService(api_key="test-key", model_factory=models), models
    return build


@pytest.fixture
def chest_pain_anamnesis():
    return AnamnesisData(
        age="58",
        sex="Masculino",
        comorbidities="HAS, DM2",
        chief_complaint="Dor no peito há 2 horas",
        hpi="Paciente refere dor no peito em aperto iniciada há 2 horas, irradiando para o braço esquerdo, com sudorese.",
        blood_pressure="150/95",
        heart_rate="104",
        respiratory_rate="22",
        temperature="36,8",
        spo2="96",
    )


@pytest.fixture
def diagnoses_answer():
    return {
        "probable": [
            {"name": "Síndrome Coronariana Aguda", "probability": 70, "rationale": "Dor típica com fatores de risco."},
            {"name": "Dissecção de Aorta", "probability": 8, "rationale": "Dor torácica com hipertensão."},
        ],
        "differential": [
            {"name": "síndrome coronariana aguda", "probability": 40, "rationale": "Duplicada."},
            {"name": "Pericardite", "probability": 15, "rationale": "Dor torácica."},
        ],
    }


@pytest.fixture
def timeline_answer():
    return {"timeline": [{"time": "Há 2 horas", "event": "Início da dor no peito."}]}
