from semiologix.checklist import (
    anamnesis_text,
    extract_keywords,
    is_item_present,
    match_checklist_item,
    normalize_text,
)
from semiologix.schemas import AnamnesisData, ChecklistItem


def test_normalize_strips_accents_and_punctuation():
    assert normalize_text("Dor Torácica, irradiando!") == "dor toracica irradiando"


def test_keywords_drop_short_and_stop_words():
    assert extract_keywords("Há febre ou dor de cabeça?") == ["febre", "dor", "cabeca"]


def test_chest_synonym_matches_peito():
    match = match_checklist_item("Dor torácica irradiando", "paciente refere dor no peito")

    assert match.keywords == ["dor", "toracica", "irradiando"]
    assert "toracica" in match.found
    assert "dor" in match.found
    # 2 of 3 keywords is below the 75% requirement
    assert match.required == 3
    assert not match.present


def test_item_present_when_enough_keywords_found():
    anamnesis = "Paciente refere dor no peito irradiando para o braço esquerdo"
    assert is_item_present("Dor torácica irradiando", anamnesis)
    assert is_item_present(ChecklistItem(item="Dor torácica irradiando"), anamnesis)


def test_synonym_expansion_for_symptoms():
    assert is_item_present("Cefaleia", "Queixa de dor de cabeça intensa")
    assert is_item_present("Dispneia", "falta de ar aos esforços")
    assert is_item_present("Edema de membros inferiores", "edema nas pernas")


def test_item_without_keywords_is_never_present():
    assert not is_item_present("se há?", "qualquer texto")
    assert not match_checklist_item("", "texto").present


def test_required_count_rounds_up():
    match = match_checklist_item("febre sudorese tosse calafrios", "febre e sudorese noturna com tosse")
    assert match.required == 3
    assert match.present


def test_anamnesis_text_excludes_hidden_fields():
    data = AnamnesisData(chief_complaint="Tosse", hpi="Há 3 dias", correct_diagnosis="Pneumonia",
                         hidden_lab_results="PCR 120")
    text = anamnesis_text(data)
    assert "Tosse" in text
    assert "Pneumonia" not in text
    assert "PCR" not in text
