import json
import os
import re

from semiologix.schemas import AnamnesisData


def export_json(data: dict, filename: str) -> None:
    """
    Export data to a JSON file.

    Args:
        data: Data to export
        filename: Name of the file to save the data
    """
    folder = os.path.dirname(filename)
    if folder:
        os.makedirs(folder, exist_ok=True)
    with open(filename, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=4, ensure_ascii=False)


def import_json(filename: str) -> dict:
    with open(filename, "r", encoding="utf-8") as f:
        return json.load(f)


def clean_anamnesis_data(data: AnamnesisData) -> AnamnesisData:
    """Reduce the age to its first run of digits ("45 anos" -> "45")."""
    if not data.age:
        return data
    match = re.search(r"\d+", data.age)
    return data.model_copy(update={"age": match.group() if match else ""})


def anamnesis_to_prompt(data: AnamnesisData) -> str:
    """Render the visible anamnesis fields as the text sent to the model."""
    def value(field: str, missing: str = "Não informado") -> str:
        return getattr(data, field) or missing

    lines = [
        f"- Idade: {value('age')}",
        f"- Sexo: {value('sex')}",
        f"- Comorbidades: {value('comorbidities')}",
        f"- Medicamentos em Uso: {value('medications')}",
        f"- Alergias: {value('allergies')}",
        f"- História Pregressa Relevante: {value('past_history')}",
        f"- Queixa Principal (QP): {value('chief_complaint')}",
        f"- História da Doença Atual (HDA): {value('hpi')}",
        f"- Sinais Vitais: PA: {value('blood_pressure', 'NI')}, FC: {value('heart_rate', 'NI')}, "
        f"FR: {value('respiratory_rate', 'NI')}, Temp: {value('temperature', 'NI')}, SpO2: {value('spo2', 'NI')}",
        f"- Peso/Altura: {value('weight_height')}",
        f"- Exame Físico Sumário: {value('physical_exam')}",
        f"- Resultados de Exames: {value('exam_results')}",
    ]
    return "\n".join(lines)


def hypothesis_matches(hypothesis: str, correct_diagnosis: str) -> bool:
    """Exact match ignoring case and surrounding whitespace."""
    if not hypothesis or not correct_diagnosis:
        return False
    return hypothesis.strip().casefold() == correct_diagnosis.strip().casefold()
