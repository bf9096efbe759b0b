from datetime import datetime
from typing import Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Difficulty = Literal["Fácil", "Intermediário", "Difícil", "Extremo"]
Specialty = Literal[
    "Geral", "Cardiologia", "Pneumologia", "Neurologia", "Gastroenterologia",
    "Nefrologia", "Pediatria", "Emergência", "Gineco/Obstetricia", "Ortopedia",
]
LogKind = Literal["request", "response", "system"]

HIDDEN_FIELDS = ("correct_diagnosis", "diagnosis_summary", "hidden_physical_exam", "hidden_lab_results")


def _percentage(value) -> int:
    """Round and clamp a model-provided number into 0..100."""
    try:
        number = int(round(float(value)))
    except (TypeError, ValueError, OverflowError) as e:
        raise ValueError(f"not a percentage: {value!r}") from e
    return max(0, min(100, number))


class AnamnesisData(BaseModel):
    """Structured patient history. Every field is free text, empty when unknown."""
    age: str = Field(default="", description="Idade do paciente.")
    sex: str = Field(default="", description="Sexo: 'Masculino', 'Feminino' ou 'Outro'.")
    comorbidities: str = Field(default="", description="Comorbidades (HAS, DM, DPOC, etc.).")
    medications: str = Field(default="", description="Medicamentos em uso.")
    allergies: str = Field(default="", description="Alergias.")
    past_history: str = Field(default="", description="História pregressa relevante.")
    chief_complaint: str = Field(default="", description="Queixa principal (QP), com tempo de evolução.")
    hpi: str = Field(default="", description="História da doença atual (HDA).")
    blood_pressure: str = Field(default="", description="PA, ex: '120/80'.")
    heart_rate: str = Field(default="", description="FC em bpm.")
    respiratory_rate: str = Field(default="", description="FR em irpm.")
    temperature: str = Field(default="", description="Temperatura em °C.")
    spo2: str = Field(default="", description="SpO2 em %.")
    weight_height: str = Field(default="", description="Peso/Altura.")
    physical_exam: str = Field(default="", description="Exame físico sumário.")
    exam_results: str = Field(default="", description="Resultados de exames laboratoriais ou de imagem relevantes.")
    diagnostic_hypotheses: str = Field(default="", description="Hipóteses diagnósticas do médico.")
    initial_plan: str = Field(default="", description="Conduta inicial do médico.")
    # Training mode only
    correct_diagnosis: str = Field(default="", description="Diagnóstico correto e conciso do caso.")
    diagnosis_summary: str = Field(default="", description="Resumo do raciocínio que leva ao diagnóstico correto.")
    hidden_physical_exam: str = Field(default="", description="Exame físico COMPLETO e detalhado, oculto ao estudante.")
    hidden_lab_results: str = Field(default="", description="Exames laboratoriais/imagem detalhados, ocultos ao estudante.")

    @field_validator("*", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        if value is None:
            return ""
        if isinstance(value, (int, float)):
            return str(value)
        return value


class Diagnosis(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Nome da condição médica.")
    probability: int = Field(description="Probabilidade estimada, de 0 a 100.")
    rationale: str = Field(default="", description="Justificativa para este diagnóstico.")

    @field_validator("probability", mode="before")
    @classmethod
    def _clamp_probability(cls, value):
        return _percentage(value)


class DiagnosisResponse(BaseModel):
    probable: List[Diagnosis] = Field(
        default_factory=list,
        description="Diagnósticos mais comuns e prováveis com base nos dados.")
    differential: List[Diagnosis] = Field(
        default_factory=list,
        description="Diagnósticos diferenciais menos comuns mas importantes ('zebras').")


class ChecklistItem(BaseModel):
    item: str = Field(description="Pergunta ou item do exame físico a ser verificado.")
    rationale: str = Field(default="", description="Por que este item é importante.")


class ManagementPlan(BaseModel):
    confirmation_tests: List[str] = Field(default_factory=list, description="Exames para confirmar o diagnóstico.")
    suggested_medications: List[str] = Field(default_factory=list, description="Tratamento medicamentoso inicial.")
    referrals: List[str] = Field(default_factory=list, description="Encaminhamentos para especialistas.")


class DiagnosisDetail(BaseModel):
    checklist: List[ChecklistItem] = Field(
        default_factory=list,
        description="Checklist de perguntas e exames físicos para confirmar ou descartar o diagnóstico.")
    plan: ManagementPlan = Field(default_factory=ManagementPlan, description="Plano de conduta inicial.")


class MergedChecklistItem(BaseModel):
    item: ChecklistItem
    sources: List[str]


class MergedDetails(BaseModel):
    checklist: List[MergedChecklistItem] = Field(default_factory=list)
    plan: ManagementPlan = Field(default_factory=ManagementPlan)


class RetroFeedback(BaseModel):
    checklist_updates: Dict[str, str] = Field(default_factory=dict)
    conducted_plan: ManagementPlan = Field(default_factory=ManagementPlan)


class TimelineEvent(BaseModel):
    time: str = Field(description="Marcador de tempo do evento (ex: 'Há 5 dias', 'Ontem').")
    event: str = Field(description="O que aconteceu naquele momento.")


class Timeline(BaseModel):
    timeline: List[TimelineEvent] = Field(
        default_factory=list,
        description="Eventos da HDA em ordem cronológica, do mais antigo ao mais recente.")


class InvestigationLogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: LogKind
    text: str
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())


class StudentHypotheses(BaseModel):
    principal: str
    differentials: List[str] = Field(default_factory=list)


class StudentPlan(BaseModel):
    exams: str = ""
    prescription: str = ""
    referrals: str = ""


class EvaluationResult(BaseModel):
    score: int = Field(description="Pontuação final do estudante, de 0 a 100, conforme a rubrica.")
    score_rationale: str = Field(description="Como a pontuação foi calculada.")
    strengths: str = Field(description="Pontos positivos do estudante.")
    improvements: str = Field(description="O que faltou ou foi incorreto.")
    conduct_analysis: str = Field(description="Análise do log de investigação e do plano de conduta.")
    correct_reasoning: str = Field(description="Raciocínio clínico correto e conduta ideal.")

    @field_validator("score", mode="before")
    @classmethod
    def _clamp_score(cls, value):
        return _percentage(value)


class SavedCase(BaseModel):
    id: str
    name: str
    saved_at: str
    anamnesis: AnamnesisData
    diagnoses: List[Diagnosis] = Field(default_factory=list)
    differential_diagnoses: List[Diagnosis] = Field(default_factory=list)
    timeline: List[TimelineEvent] = Field(default_factory=list)


class GroundingSource(BaseModel):
    uri: str
    title: str


class AcademicSummary(BaseModel):
    disease_summary: str = Field(description="Resumo da doença: definição e fisiopatologia principal.")
    treatment_guidelines: str = Field(description="Diretrizes de tratamento atuais, citando as fontes.")
    recent_findings: str = Field(description="Descobertas importantes dos últimos 5 anos, citando as fontes.")


class AcademicSearchResult(AcademicSummary):
    sources: List[GroundingSource] = Field(default_factory=list)
