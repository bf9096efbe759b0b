import asyncio

from semiologix.details import DetailInvestigation
from semiologix.errors import ServiceError
from semiologix.schemas import AnamnesisData, ChecklistItem, Diagnosis, DiagnosisDetail, ManagementPlan

ACS = Diagnosis(name="SCA", probability=70)
PERICARDITIS = Diagnosis(name="Pericardite", probability=15)


class StubService:
    """Answers detail requests after the given delays, raising for names in `failing`."""

    def __init__(self, details, delays=None, failing=()):
        self.details = details
        self.delays = delays or {}
        self.failing = set(failing)
        self.requested = []

    async def fetch_diagnosis_details(self, anamnesis, diagnosis):
        self.requested.append(diagnosis.name)
        await asyncio.sleep(self.delays.get(diagnosis.name, 0))
        if diagnosis.name in self.failing:
            raise ServiceError(f"Não foi possível obter os detalhes para {diagnosis.name}.")
        return self.details[diagnosis.name]


DETAILS = {
    "SCA": DiagnosisDetail(
        checklist=[ChecklistItem(item="Dor torácica irradiando"), ChecklistItem(item="Sudorese")],
        plan=ManagementPlan(confirmation_tests=["ECG", "Troponina"]),
    ),
    "Pericardite": DiagnosisDetail(
        checklist=[ChecklistItem(item="Sudorese"), ChecklistItem(item="Atrito pericárdico")],
        plan=ManagementPlan(confirmation_tests=["ECG"], suggested_medications=["Colchicina"]),
    ),
}

ANAMNESIS = AnamnesisData(chief_complaint="Dor no peito irradiando para o braço", hpi="Com sudorese intensa.")


def test_open_fetches_each_selected_diagnosis():
    async def scenario():
        investigation = DetailInvestigation(StubService(DETAILS))
        investigation.open(ANAMNESIS, [ACS, PERICARDITIS])
        assert investigation.is_loading
        await investigation.wait()
        return investigation

    investigation = asyncio.run(scenario())

    assert not investigation.is_loading
    assert investigation.combined_error is None
    merged = investigation.merged()
    assert [entry.item.item for entry in merged.checklist] == [
        "Dor torácica irradiando", "Sudorese", "Atrito pericárdico"]
    assert merged.plan.confirmation_tests == ["ECG", "Troponina"]
    status = investigation.checklist_status()
    assert [row["present"] for row in status] == [True, True, False]
    assert status[1]["sources"] == ["SCA", "Pericardite"]


def test_partial_results_are_visible():
    async def scenario():
        investigation = DetailInvestigation(StubService(DETAILS, delays={"Pericardite": 0.2}))
        investigation.open(ANAMNESIS, [ACS, PERICARDITIS])
        await asyncio.sleep(0.05)
        partial = investigation.snapshot()
        await investigation.wait()
        return partial, investigation.snapshot()

    partial, final = asyncio.run(scenario())

    assert partial["loading"]
    assert [row["item"] for row in partial["checklist"]] == ["Dor torácica irradiando", "Sudorese"]
    assert not final["loading"]
    assert len(final["checklist"]) == 3


def test_errors_are_per_diagnosis():
    async def scenario():
        investigation = DetailInvestigation(StubService(DETAILS, failing={"SCA"}))
        investigation.open(ANAMNESIS, [ACS, PERICARDITIS])
        await investigation.wait()
        return investigation

    investigation = asyncio.run(scenario())

    assert investigation.combined_error == "Não foi possível obter os detalhes para SCA."
    assert investigation.details["SCA"] is None
    assert [entry.item.item for entry in investigation.merged().checklist] == ["Sudorese", "Atrito pericárdico"]


def test_stale_results_are_discarded():
    async def scenario():
        service = StubService(DETAILS, delays={"SCA": 0.2})
        investigation = DetailInvestigation(service)
        investigation.open(ANAMNESIS, [ACS])
        stale_tasks = list(investigation._tasks)
        investigation.open(ANAMNESIS, [PERICARDITIS])
        await investigation.wait()
        await asyncio.gather(*stale_tasks)
        return investigation

    investigation = asyncio.run(scenario())

    assert list(investigation.details) == ["Pericardite"]
    assert investigation.generation == 2
    assert [d.name for d in investigation.selected] == ["Pericardite"]


def test_close_drops_late_results():
    async def scenario():
        investigation = DetailInvestigation(StubService(DETAILS, delays={"SCA": 0.1}))
        investigation.open(ANAMNESIS, [ACS])
        tasks = list(investigation._tasks)
        investigation.close()
        await asyncio.gather(*tasks)
        return investigation

    investigation = asyncio.run(scenario())

    assert investigation.details == {}
    assert not investigation.is_loading
    assert investigation.snapshot()["checklist"] == []


def test_closed_generation_tasks_stay_referenced_until_done():
    async def scenario():
        investigation = DetailInvestigation(StubService(DETAILS, delays={"SCA": 0.1}))
        investigation.open(ANAMNESIS, [ACS])
        investigation.close()
        assert investigation._tasks == []
        pending = list(investigation._pending)
        assert len(pending) == 1
        await asyncio.gather(*pending)
        await asyncio.sleep(0)
        return investigation

    investigation = asyncio.run(scenario())

    assert investigation._pending == set()
    assert investigation.details == {}
