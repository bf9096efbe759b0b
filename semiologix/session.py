import asyncio
from typing import Annotated, List, Optional, TypedDict

# LangChain imports
from langchain_core.runnables import RunnableConfig

# Pydantic imports
from pydantic import ValidationError

# LangGraph imports
from langgraph.graph import StateGraph, START, END

# Local imports
from semiologix.analysis import run_analysis, validate_for_analysis
from semiologix.config import logger
from semiologix.errors import InsufficientDataError, ServiceError
from semiologix.gemini_service import GeminiService
from semiologix.schemas import (
    AnamnesisData,
    Diagnosis,
    EvaluationResult,
    InvestigationLogEntry,
    RetroFeedback,
    SavedCase,
    StudentHypotheses,
    StudentPlan,
    TimelineEvent,
)
from semiologix.utils import clean_anamnesis_data


class ResetLog(list):
    """Log update that starts a new simulation instead of appending."""


def append_log(current: List[InvestigationLogEntry], update: List[InvestigationLogEntry]) -> List[InvestigationLogEntry]:
    if isinstance(update, ResetLog):
        return list(update)
    return list(current or []) + list(update or [])


##################### Graph Compiling Script #####################
# Every user action is one invocation of this graph. The router picks the node
# from state["function"]; nodes only return the keys they change.
class SessionState(TypedDict, total=False):
    function: str
    payload: dict
    anamnesis: AnamnesisData
    diagnoses: List[Diagnosis]
    differential_diagnoses: List[Diagnosis]
    timeline: List[TimelineEvent]
    error: Optional[str]
    analysis_requested: bool
    training_mode: bool
    investigation_log: Annotated[List[InvestigationLogEntry], append_log]
    evaluation: Optional[EvaluationResult]
    final_anamnesis: Optional[AnamnesisData]


def initial_state(training_mode: bool = False) -> SessionState:
    return {
        "function": "",
        "payload": {},
        "anamnesis": AnamnesisData(),
        "diagnoses": [],
        "differential_diagnoses": [],
        "timeline": [],
        "error": None,
        "analysis_requested": False,
        "training_mode": training_mode,
        "investigation_log": [],
        "evaluation": None,
        "final_anamnesis": None,
    }


def cleared(state: SessionState) -> dict:
    """Fresh case, same mode."""
    fresh = initial_state(state.get("training_mode", False))
    del fresh["function"], fresh["payload"]
    fresh["investigation_log"] = ResetLog()
    return fresh


def _service(config: RunnableConfig) -> GeminiService:
    return config["configurable"]["service"]


def router(state: SessionState):
    # Route to the node handling the requested action
    function = state["function"]
    if function in ("reevaluate", "finalize"):
        return "integrate_feedback"
    return function


async def analyze(state: SessionState, config: RunnableConfig) -> dict:
    anamnesis = state["anamnesis"]
    try:
        validate_for_analysis(anamnesis)
    except InsufficientDataError as e:
        return {"error": str(e), "diagnoses": [], "differential_diagnoses": [], "analysis_requested": True}

    # In training mode the timeline of the case is extracted only once
    existing = state.get("timeline") if state.get("training_mode") else None
    try:
        result = await run_analysis(_service(config), anamnesis, existing_timeline=existing)
    except ServiceError as e:
        return {"error": str(e), "diagnoses": [], "differential_diagnoses": [], "timeline": [],
                "analysis_requested": True}

    return {
        "error": None,
        "analysis_requested": True,
        "diagnoses": result.diagnoses.probable,
        "differential_diagnoses": result.diagnoses.differential,
        "timeline": result.timeline,
    }


async def update_anamnesis(state: SessionState) -> dict:
    changes = state["payload"].get("fields", {})
    if not isinstance(changes, dict):
        return {"error": "Os campos da anamnese devem ser enviados como um objeto."}
    unknown = set(changes) - set(AnamnesisData.model_fields)
    if unknown:
        return {"error": f"Campos desconhecidos: {', '.join(sorted(unknown))}"}
    try:
        anamnesis = AnamnesisData.model_validate({**state["anamnesis"].model_dump(), **changes})
    except ValidationError as e:
        invalid = sorted({str(error["loc"][0]) for error in e.errors() if error["loc"]})
        return {"error": f"Valores inválidos para: {', '.join(invalid)}"}
    return {"anamnesis": anamnesis}


async def generate_case(state: SessionState, config: RunnableConfig) -> dict:
    difficulty = state["payload"].get("difficulty", "Intermediário")
    specialty = state["payload"].get("specialty", "Geral")
    update = cleared(state)
    update["training_mode"] = True
    try:
        case = await _service(config).generate_test_case(difficulty, specialty)
    except ServiceError:
        update["error"] = "Falha ao gerar o caso de teste. Tente novamente."
        return update

    update["anamnesis"] = case
    update["investigation_log"] = ResetLog([InvestigationLogEntry(
        kind="system",
        text=f"Novo caso clínico (Especialidade: {specialty}, Dificuldade: {difficulty}) gerado. Inicie sua investigação.",
    )])
    return update


async def investigate(state: SessionState, config: RunnableConfig) -> dict:
    request = state["payload"].get("request", "")
    if not request.strip():
        return {}
    entries = [InvestigationLogEntry(kind="request", text=request)]
    anamnesis = state["anamnesis"]
    try:
        result = await _service(config).fetch_investigation_result(
            request, anamnesis.hidden_physical_exam, anamnesis.hidden_lab_results)
        entries.append(InvestigationLogEntry(kind="response", text=result))
    except ServiceError as e:
        entries.append(InvestigationLogEntry(kind="system", text=str(e)))
    return {"investigation_log": entries}


async def evaluate(state: SessionState, config: RunnableConfig) -> dict:
    hypotheses = StudentHypotheses.model_validate(state["payload"]["hypotheses"])
    plan = StudentPlan.model_validate(state["payload"].get("plan", {}))
    service = _service(config)

    # The AI's own analysis runs alongside the evaluation for comparison
    evaluation_call = service.evaluate_student_performance(
        state["anamnesis"], hypotheses, state.get("investigation_log", []), plan)
    evaluation, analysis = await asyncio.gather(evaluation_call, analyze(state, config), return_exceptions=True)

    if isinstance(analysis, BaseException):
        raise analysis
    if isinstance(evaluation, ServiceError):
        return {**analysis, "evaluation": None, "error": str(evaluation)}
    if isinstance(evaluation, BaseException):
        raise evaluation
    return {**analysis, "evaluation": evaluation}


async def import_text(state: SessionState, config: RunnableConfig) -> dict:
    update = cleared(state)
    try:
        update["anamnesis"] = await _service(config).parse_anamnesis_text(state["payload"]["text"])
    except ServiceError as e:
        update["error"] = str(e)
    return update


async def import_exam(state: SessionState, config: RunnableConfig) -> dict:
    try:
        summary = await _service(config).summarize_exam_results(state["payload"]["text"])
    except ServiceError as e:
        return {"error": str(e)}
    return {"error": None, "anamnesis": state["anamnesis"].model_copy(update={"exam_results": summary})}


async def import_audio(state: SessionState, config: RunnableConfig) -> dict:
    update = cleared(state)
    payload = state["payload"]
    try:
        update["anamnesis"] = await _service(config).transcribe_anamnesis_audio(payload["audio"], payload["mime_type"])
    except ServiceError as e:
        update["error"] = str(e)
    return update


async def integrate_feedback(state: SessionState, config: RunnableConfig) -> dict:
    feedback = RetroFeedback.model_validate(state["payload"].get("feedback", {}))
    updated = await _service(config).integrate_feedback(state["anamnesis"], feedback)
    if state["function"] == "finalize":
        return {"error": None, "final_anamnesis": updated}
    return {"error": None, "anamnesis": updated}


async def save_final(state: SessionState, config: RunnableConfig) -> dict:
    try:
        parsed = await _service(config).parse_anamnesis_text(state["payload"]["text"])
    except ServiceError as e:
        return {"error": f"Falha ao salvar a anamnese: {e}"}
    return {"error": None, "anamnesis": parsed, "final_anamnesis": None}


async def load_case(state: SessionState) -> dict:
    case = SavedCase.model_validate(state["payload"]["case"])
    update = cleared(state)
    update.update({
        "training_mode": False,
        "anamnesis": clean_anamnesis_data(case.anamnesis),
        "diagnoses": case.diagnoses,
        "differential_diagnoses": case.differential_diagnoses,
        "timeline": case.timeline,
        "analysis_requested": True,
    })
    return update


async def reset(state: SessionState) -> dict:
    update = cleared(state)
    if "training_mode" in state["payload"]:
        update["training_mode"] = bool(state["payload"]["training_mode"])
    return update


def after_update(state: SessionState):
    # Re-run the analysis once the anamnesis changed, unless that failed
    if state["function"] == "finalize" or state.get("error"):
        return END
    return "analyze"


logger.info("Compiling Session Agent...")
workflow = StateGraph(SessionState)

# Add nodes
workflow.add_node("analyze", analyze)
workflow.add_node("update_anamnesis", update_anamnesis)
workflow.add_node("generate_case", generate_case)
workflow.add_node("investigate", investigate)
workflow.add_node("evaluate", evaluate)
workflow.add_node("import_text", import_text)
workflow.add_node("import_exam", import_exam)
workflow.add_node("import_audio", import_audio)
workflow.add_node("integrate_feedback", integrate_feedback)
workflow.add_node("save_final", save_final)
workflow.add_node("load_case", load_case)
workflow.add_node("reset", reset)

# Create edges
workflow.add_conditional_edges(START, router)
workflow.add_conditional_edges("integrate_feedback", after_update)
workflow.add_conditional_edges("save_final", after_update)
for node in ("analyze", "update_anamnesis", "generate_case", "investigate", "evaluate",
             "import_text", "import_exam", "import_audio", "load_case", "reset"):
    workflow.add_edge(node, END)

# Compile the graph
SessionAgent = workflow.compile()

ACTIONS = ("analyze", "update_anamnesis", "generate_case", "investigate", "evaluate", "import_text",
           "import_exam", "import_audio", "reevaluate", "finalize", "save_final", "load_case", "reset")


async def dispatch(state: SessionState, function: str, service: GeminiService, **payload) -> SessionState:
    """
    Apply one action to a session state and return the new state.

    Args:
        state: Current session state
        function: One of ACTIONS
        service: AI service used by the nodes
        payload: Action arguments

    Returns:
        The new session state
    """
    if function not in ACTIONS:
        raise ValueError(f"Unknown action: {function}")
    logger.info(f"Session action: {function}")
    result = await SessionAgent.ainvoke(
        {**state, "function": function, "payload": payload},
        {"configurable": {"service": service}},
    )
    return result
