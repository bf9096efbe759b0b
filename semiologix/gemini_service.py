import json
from typing import Callable, List, Sequence, Type, TypeVar

from langchain_core.exceptions import OutputParserException
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_core.output_parsers import PydanticOutputParser, StrOutputParser
from langsmith import traceable
from pydantic import BaseModel

from semiologix.config import logger, get_model, MIN_TIMELINE_TEXT
from semiologix.errors import ServiceError, ResponseParseError, RateLimitExceededError
from semiologix.prompts import (
    academic_search_prompt,
    anamnesis_parsing_prompt,
    audio_anamnesis_prompt,
    diagnosis_detail_prompt,
    diagnosis_prompt,
    evaluation_prompt,
    exam_summary_prompt,
    feedback_integration_prompt,
    investigation_prompt,
    prontuary_summary_prompt,
    timeline_prompt,
    training_case_prompt,
)
from semiologix.retry import call_with_retry, is_rate_limit_error
from semiologix.schemas import (
    AcademicSearchResult,
    AcademicSummary,
    AnamnesisData,
    Diagnosis,
    DiagnosisDetail,
    DiagnosisResponse,
    Difficulty,
    EvaluationResult,
    GroundingSource,
    InvestigationLogEntry,
    RetroFeedback,
    Specialty,
    StudentHypotheses,
    StudentPlan,
    Timeline,
    TimelineEvent,
)
from semiologix.utils import anamnesis_to_prompt, clean_anamnesis_data

M = TypeVar("M", bound=BaseModel)


def message_text(message: BaseMessage) -> str:
    # Gemini may answer with a list of content parts
    content = message.content
    if isinstance(content, list):
        return "".join(
            part.get("text", "") if isinstance(part, dict) else str(part)
            for part in content
        ).strip()
    return str(content).strip()


def grounding_sources(message: BaseMessage) -> List[GroundingSource]:
    """Web sources attached by Google Search grounding, if any."""
    metadata = (getattr(message, "response_metadata", None) or {}).get("grounding_metadata") or {}
    sources = []
    for chunk in metadata.get("grounding_chunks") or []:
        web = chunk.get("web") or {}
        if web.get("uri"):
            sources.append(GroundingSource(uri=web["uri"], title=web.get("title") or web["uri"]))
    return sources


class GeminiService:
    """
    Every call to the generative model goes through this class.

    Calls are wrapped by call_with_retry and structured answers are validated
    with a PydanticOutputParser. Failures surface as ServiceError subclasses
    carrying a user facing message, except where a best-effort default keeps
    the flow usable (timeline, feedback integration).
    """

    def __init__(self, api_key: str | None = None, model_factory: Callable = get_model):
        self.api_key = api_key
        self.model_factory = model_factory

    def _model(self, temperature: float, json_mode: bool = False, **kwargs):
        return self.model_factory(temperature=temperature, api_key=self.api_key, json_mode=json_mode, **kwargs)

    @staticmethod
    def _failure(message: str, error: Exception) -> ServiceError:
        logger.error(f"{message} Cause: {error}")
        if isinstance(error, ResponseParseError):
            return ResponseParseError(message)
        if is_rate_limit_error(error):
            return RateLimitExceededError(message)
        return ServiceError(message)

    async def _invoke(self, chain, messages: Sequence[BaseMessage]):
        async def api_call():
            # Malformed answers never count as rate limits, whatever their text says
            try:
                return await chain.ainvoke(list(messages))
            except OutputParserException as e:
                raise ResponseParseError("A resposta da IA não seguiu o formato esperado.") from e

        return await call_with_retry(api_call)

    async def _structured(self, system: SystemMessage, content, schema: Type[M], temperature: float, **kwargs) -> M:
        parser = PydanticOutputParser(pydantic_object=schema)
        instructions = parser.get_format_instructions()
        if isinstance(content, list):
            content = content + [{"type": "text", "text": instructions}]
        else:
            content = f"{content}\n\n{instructions}"
        chain = self._model(temperature, json_mode=True, **kwargs) | parser
        return await self._invoke(chain, [system, HumanMessage(content=content)])

    async def _text(self, system: SystemMessage, content: str, temperature: float) -> str:
        chain = self._model(temperature) | StrOutputParser()
        result = await self._invoke(chain, [system, HumanMessage(content=content)])
        return result.strip()

    @traceable(run_type="llm")
    async def fetch_diagnoses(self, anamnesis: AnamnesisData) -> DiagnosisResponse:
        try:
            return await self._structured(
                diagnosis_prompt,
                f"A anamnese é:\n{anamnesis_to_prompt(anamnesis)}",
                DiagnosisResponse,
                temperature=0.2,
            )
        except Exception as e:
            raise self._failure("Falha ao obter diagnósticos. Verifique sua conexão ou a chave de API.", e) from e

    @traceable(run_type="llm")
    async def fetch_diagnosis_details(self, anamnesis: AnamnesisData, diagnosis: Diagnosis) -> DiagnosisDetail:
        content = (
            f'O diagnóstico selecionado é: "{diagnosis.name}".\n'
            f"A anamnese atual do paciente é:\n{anamnesis_to_prompt(anamnesis)}"
        )
        try:
            return await self._structured(diagnosis_detail_prompt, content, DiagnosisDetail, temperature=0.3)
        except Exception as e:
            raise self._failure(f"Não foi possível obter os detalhes para {diagnosis.name}.", e) from e

    @traceable(run_type="llm")
    async def integrate_feedback(self, anamnesis: AnamnesisData, feedback: RetroFeedback) -> AnamnesisData:
        """Merge checklist answers and the conducted plan into the anamnesis.

        Returns the anamnesis unchanged when the call fails, so no data is lost.
        """
        content = (
            f"Anamnese atual:\n{anamnesis.model_dump_json(indent=2)}\n\n"
            f"Novas informações do checklist: {json.dumps(feedback.checklist_updates, ensure_ascii=False)}\n"
            f"Plano de conduta realizado: {feedback.conducted_plan.model_dump_json()}"
        )
        try:
            updated = await self._structured(feedback_integration_prompt, content, AnamnesisData, temperature=0.1)
        except Exception as e:
            logger.error(f"Error integrating feedback: {e}")
            return anamnesis
        return clean_anamnesis_data(updated)

    @traceable(run_type="llm")
    async def generate_test_case(self, difficulty: Difficulty = "Intermediário",
                                 specialty: Specialty = "Geral") -> AnamnesisData:
        system = SystemMessage(content=training_case_prompt.content.format(difficulty=difficulty, specialty=specialty))
        try:
            case = await self._structured(
                system,
                "Gere um novo caso clínico.",
                AnamnesisData,
                temperature=0.95,
                top_p=0.95,
                top_k=64,
            )
        except Exception as e:
            raise self._failure("Não foi possível gerar um caso de teste.", e) from e
        # The student fills these in
        case = case.model_copy(update={"exam_results": "", "diagnostic_hypotheses": "", "initial_plan": ""})
        return clean_anamnesis_data(case)

    @traceable(run_type="llm")
    async def fetch_investigation_result(self, request: str, hidden_physical_exam: str,
                                         hidden_lab_results: str) -> str:
        content = (
            f"DADOS OCULTOS DO EXAME FÍSICO:\n---\n{hidden_physical_exam}\n---\n\n"
            f"DADOS OCULTOS DOS EXAMES (LABORATÓRIO/IMAGEM):\n---\n{hidden_lab_results}\n---\n\n"
            f'SOLICITAÇÃO DO ESTUDANTE: "{request}"'
        )
        try:
            return await self._text(investigation_prompt, content, temperature=0.1)
        except Exception as e:
            raise self._failure("Falha na comunicação com o simulador de IA.", e) from e

    @traceable(run_type="llm")
    async def evaluate_student_performance(self, anamnesis: AnamnesisData, hypotheses: StudentHypotheses,
                                           investigation_log: Sequence[InvestigationLogEntry],
                                           plan: StudentPlan) -> EvaluationResult:
        speakers = {"request": "Estudante solicitou", "response": "Simulador respondeu", "system": "Sistema"}
        log_text = "\n".join(f"{speakers[entry.kind]}: {entry.text}" for entry in investigation_log)
        content = f"""**Contexto do caso (o que o estudante viu inicialmente):**
{anamnesis_to_prompt(anamnesis)}

**Gabarito do caso:**
- Diagnóstico correto: {anamnesis.correct_diagnosis}
- Raciocínio correto: {anamnesis.diagnosis_summary}
- Exame físico completo: {anamnesis.hidden_physical_exam or 'Não fornecido'}
- Exames laboratoriais/imagem: {anamnesis.hidden_lab_results or 'Não fornecido'}

**Performance do estudante:**
- Hipótese principal: {hypotheses.principal}. Hipóteses diferenciais: {', '.join(hypotheses.differentials) or 'Nenhuma'}.
- Log de investigação:
{log_text or 'Nenhuma ação registrada'}
- Plano de conduta:
  - Exames solicitados: {plan.exams or 'Nenhum'}
  - Prescrição: {plan.prescription or 'Nenhuma'}
  - Encaminhamentos: {plan.referrals or 'Nenhum'}"""
        try:
            return await self._structured(evaluation_prompt, content, EvaluationResult, temperature=0.4)
        except Exception as e:
            raise self._failure("Não foi possível obter a avaliação do preceptor de IA.", e) from e

    @traceable(run_type="llm")
    async def parse_anamnesis_text(self, text: str) -> AnamnesisData:
        try:
            data = await self._structured(
                anamnesis_parsing_prompt,
                f"Texto da anamnese para analisar:\n---\n{text}\n---",
                AnamnesisData,
                temperature=0.0,
            )
        except Exception as e:
            raise self._failure("Não foi possível processar o texto da anamnese.", e) from e
        return clean_anamnesis_data(data)

    @traceable(run_type="llm")
    async def transcribe_anamnesis_audio(self, base64_audio: str, mime_type: str) -> AnamnesisData:
        content = [
            {"type": "media", "mime_type": mime_type, "data": base64_audio},
            {"type": "text", "text": audio_anamnesis_prompt},
        ]
        system = SystemMessage(content="Você é um escriba médico de IA.")
        try:
            data = await self._structured(system, content, AnamnesisData, temperature=0.1)
        except Exception as e:
            raise self._failure("Não foi possível processar a anamnese por áudio.", e) from e
        return clean_anamnesis_data(data)

    @traceable(run_type="llm")
    async def summarize_exam_results(self, exam_text: str) -> str:
        try:
            return await self._text(
                exam_summary_prompt,
                f"Texto bruto do laudo para processar:\n---\n{exam_text}\n---",
                temperature=0.0,
            )
        except Exception as e:
            raise self._failure("Não foi possível resumir os resultados do exame.", e) from e

    @traceable(run_type="llm")
    async def fetch_timeline(self, hpi: str) -> List[TimelineEvent]:
        """Chronological events of the HPI. Best effort: empty on failure."""
        if not hpi or len(hpi.strip()) < MIN_TIMELINE_TEXT:
            return []
        try:
            result = await self._structured(timeline_prompt, f'HDA para análise:\n"{hpi}"', Timeline, temperature=0.1)
        except Exception as e:
            logger.error(f"Error fetching timeline from HDA: {e}")
            return []
        return result.timeline

    @traceable(run_type="llm")
    async def fetch_academic_publications(self, diagnosis_name: str) -> AcademicSearchResult:
        model = self._model(0.2, tools=[{"google_search": {}}])
        messages = [academic_search_prompt, HumanMessage(content=f'Diagnóstico: "{diagnosis_name}"')]
        try:
            response = await self._invoke(model, messages)
        except Exception as e:
            raise self._failure(f"Não foi possível buscar publicações para {diagnosis_name}.", e) from e

        text = message_text(response)
        try:
            summary = PydanticOutputParser(pydantic_object=AcademicSummary).parse(text)
        except OutputParserException as e:
            logger.warning(f"Academic search result is not JSON, using raw text as fallback: {e}")
            summary = AcademicSummary(
                disease_summary=f"A IA não retornou um formato JSON válido. O conteúdo recebido foi:\n\n{text}",
                treatment_guidelines="Não foi possível extrair as diretrizes de tratamento de forma estruturada.",
                recent_findings="Não foi possível extrair as descobertas recentes de forma estruturada.",
            )
        return AcademicSearchResult(**summary.model_dump(), sources=grounding_sources(response))

    @traceable(run_type="llm")
    async def generate_prontuary_summary(self, anamnesis_text: str) -> str:
        try:
            return await self._text(
                prontuary_summary_prompt,
                f"Anamnese completa para resumir:\n---\n{anamnesis_text}\n---",
                temperature=0.3,
            )
        except Exception as e:
            raise self._failure("Não foi possível gerar o resumo da anamnese.", e) from e
