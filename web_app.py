from typing import Dict, List, Optional
from uuid import uuid4
import os
import shutil
from pathlib import Path
from urllib.parse import quote

from fastapi import Body, Depends, FastAPI, File, HTTPException, Response, UploadFile
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from semiologix.cases import CaseStore
from semiologix.config import logger, UPLOAD_DIR
from semiologix.details import DetailInvestigation
from semiologix.documents import check_extension, encode_audio, extract_text, is_audio_mime
from semiologix.errors import CaseStorageError, RateLimitExceededError, ServiceError
from semiologix.export import export_filename, export_pdf, format_anamnesis_for_editing
from semiologix.gemini_service import GeminiService
from semiologix.schemas import HIDDEN_FIELDS, Diagnosis
from semiologix.session import ACTIONS, SessionState, dispatch, initial_state
from semiologix.vitals import probability_band, top_diagnoses, vital_signs
from semiologix.reconciler import ReconciledDiagnoses

app = FastAPI(title="SemiologiX Clinical Assistant")

# Ensure tmp directory exists
TMP_DIR = Path(UPLOAD_DIR)
TMP_DIR.mkdir(parents=True, exist_ok=True)

sessions: Dict[str, SessionState] = {}
investigations: Dict[str, DetailInvestigation] = {}
case_store = CaseStore()

CLOSES_DETAILS = ("analyze", "evaluate", "reevaluate", "finalize", "save_final",
                  "generate_case", "import_text", "import_audio", "load_case", "reset")
CUSTOM_RATIONALE = "Diagnóstico inserido manualmente para investigação."


class SessionResponse(BaseModel):
    thread_id: str
    state: dict


class DetailsRequest(BaseModel):
    names: List[str] = []
    # A diagnosis typed in by the user, investigated on its own
    custom: Optional[str] = None


class ApiKeyRequest(BaseModel):
    api_key: str


class TextRequest(BaseModel):
    text: str


def get_store() -> CaseStore:
    return case_store


def get_service(store: CaseStore = Depends(get_store)) -> GeminiService:
    # The saved key wins over GOOGLE_API_KEY from the environment
    return GeminiService(api_key=store.get_api_key())


def _get_session(thread_id: str) -> SessionState:
    if thread_id not in sessions:
        raise HTTPException(status_code=404, detail="Sessão não encontrada.")
    return sessions[thread_id]


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, RateLimitExceededError):
        return HTTPException(status_code=503, detail=str(exc))
    if isinstance(exc, ServiceError):
        return HTTPException(status_code=502, detail=str(exc))
    if isinstance(exc, CaseStorageError):
        return HTTPException(status_code=500, detail=str(exc))
    if isinstance(exc, ValueError):
        return HTTPException(status_code=400, detail=str(exc))
    logger.error(f"Unexpected error: {exc}")
    return HTTPException(status_code=500, detail=str(exc))


def serialize_state(state: SessionState) -> dict:
    # The case answer stays hidden from the student until the evaluation
    reveal = not state.get("training_mode") or state.get("evaluation") is not None
    exclude = None if reveal else set(HIDDEN_FIELDS)
    final = state.get("final_anamnesis")
    evaluation = state.get("evaluation")
    return {
        "anamnesis": state["anamnesis"].model_dump(exclude=exclude),
        "diagnoses": [d.model_dump() for d in state.get("diagnoses", [])],
        "differential_diagnoses": [d.model_dump() for d in state.get("differential_diagnoses", [])],
        "timeline": [t.model_dump() for t in state.get("timeline", [])],
        "error": state.get("error"),
        "analysis_requested": state.get("analysis_requested", False),
        "training_mode": state.get("training_mode", False),
        "investigation_log": [e.model_dump() for e in state.get("investigation_log", [])],
        "evaluation": evaluation.model_dump() if evaluation else None,
        "final_anamnesis": final.model_dump() if final else None,
        "final_text": format_anamnesis_for_editing(final) if final else None,
    }


async def _run_action(thread_id: str, function: str, service: GeminiService, **payload) -> SessionResponse:
    state = _get_session(thread_id)
    try:
        result = await dispatch(state, function, service, **payload)
    except (ValueError, KeyError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    sessions[thread_id] = result
    # Any action that replaces the case or re-ranks the diagnoses invalidates open detail views
    if function in CLOSES_DETAILS and thread_id in investigations:
        investigations[thread_id].close()
    return SessionResponse(thread_id=thread_id, state=serialize_state(result))


async def _save_upload(file: UploadFile) -> Path:
    """Store an upload in the tmp directory, rejecting unsupported formats first."""
    check_extension(file.filename or "")
    file_path = TMP_DIR / f"{uuid4().hex}_{os.path.basename(file.filename)}"
    with file_path.open("wb") as buffer:
        shutil.copyfileobj(file.file, buffer)
    return file_path


async def _read_document(file: UploadFile) -> str:
    try:
        file_path = await _save_upload(file)
    except ValueError as exc:
        raise HTTPException(status_code=415, detail=str(exc)) from exc
    try:
        return await run_in_threadpool(extract_text, str(file_path))
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    finally:
        file_path.unlink(missing_ok=True)


################ Sessions ################
@app.post("/api/sessions", response_model=SessionResponse)
async def create_session(training_mode: bool = False) -> SessionResponse:
    thread_id = str(uuid4())
    sessions[thread_id] = initial_state(training_mode)
    return SessionResponse(thread_id=thread_id, state=serialize_state(sessions[thread_id]))


@app.get("/api/sessions/{thread_id}", response_model=SessionResponse)
async def get_session(thread_id: str) -> SessionResponse:
    return SessionResponse(thread_id=thread_id, state=serialize_state(_get_session(thread_id)))


@app.delete("/api/sessions/{thread_id}")
async def delete_session(thread_id: str):
    _get_session(thread_id)
    del sessions[thread_id]
    investigation = investigations.pop(thread_id, None)
    if investigation:
        investigation.close()
    return {"status": "success"}


@app.post("/api/sessions/{thread_id}/upload/anamnesis", response_model=SessionResponse)
async def upload_anamnesis(thread_id: str, file: UploadFile = File(...),
                           service: GeminiService = Depends(get_service)) -> SessionResponse:
    _get_session(thread_id)
    text = await _read_document(file)
    return await _run_action(thread_id, "import_text", service, text=text)


@app.post("/api/sessions/{thread_id}/upload/exam", response_model=SessionResponse)
async def upload_exam(thread_id: str, file: UploadFile = File(...),
                      service: GeminiService = Depends(get_service)) -> SessionResponse:
    _get_session(thread_id)
    text = await _read_document(file)
    return await _run_action(thread_id, "import_exam", service, text=text)


@app.post("/api/sessions/{thread_id}/upload/audio", response_model=SessionResponse)
async def upload_audio(thread_id: str, file: UploadFile = File(...),
                       service: GeminiService = Depends(get_service)) -> SessionResponse:
    _get_session(thread_id)
    if not is_audio_mime(file.content_type):
        raise HTTPException(status_code=415, detail="Formato de áudio não suportado.")
    audio = encode_audio(await file.read())
    return await _run_action(thread_id, "import_audio", service, audio=audio, mime_type=file.content_type)


################ Detail investigation ################
@app.post("/api/sessions/{thread_id}/details")
async def open_details(thread_id: str, request: DetailsRequest, wait: bool = False,
                       service: GeminiService = Depends(get_service)):
    state = _get_session(thread_id)
    custom = (request.custom or "").strip()
    if custom:
        selected = [Diagnosis(name=custom, probability=0, rationale=CUSTOM_RATIONALE)]
    else:
        available = {d.name: d for d in state.get("diagnoses", []) + state.get("differential_diagnoses", [])}
        missing = [name for name in request.names if name not in available]
        if not request.names or missing:
            raise HTTPException(status_code=400,
                                detail=f"Diagnósticos inválidos: {', '.join(missing) or 'nenhum selecionado'}")
        selected = [available[name] for name in request.names]

    investigation = investigations.get(thread_id)
    if investigation is None:
        investigation = investigations[thread_id] = DetailInvestigation(service)
    investigation.service = service
    investigation.open(state["anamnesis"], selected)
    if wait:
        await investigation.wait()
    return investigation.snapshot(state["anamnesis"])


@app.get("/api/sessions/{thread_id}/details")
async def poll_details(thread_id: str):
    state = _get_session(thread_id)
    investigation = investigations.get(thread_id)
    if investigation is None:
        raise HTTPException(status_code=404, detail="Nenhuma investigação aberta.")
    # Presence flags follow the anamnesis as it is being edited
    return investigation.snapshot(state["anamnesis"])


@app.delete("/api/sessions/{thread_id}/details")
async def close_details(thread_id: str):
    _get_session(thread_id)
    investigation = investigations.get(thread_id)
    if investigation:
        investigation.close()
    return {"status": "success"}


################ Summary panel & export ################
@app.get("/api/sessions/{thread_id}/vitals")
async def vitals_summary(thread_id: str):
    state = _get_session(thread_id)
    ranked = ReconciledDiagnoses(state.get("diagnoses", []), state.get("differential_diagnoses", [])).all_ranked()
    return {
        "vitals": vital_signs(state["anamnesis"]),
        "top_diagnoses": [
            {**d.model_dump(), "band": probability_band(d.probability)} for d in top_diagnoses(ranked)
        ],
    }


@app.post("/api/sessions/{thread_id}/save")
async def save_case(thread_id: str, store: CaseStore = Depends(get_store)):
    state = _get_session(thread_id)
    try:
        case = store.save_case(
            state["anamnesis"],
            state.get("diagnoses", []),
            state.get("differential_diagnoses", []),
            state.get("timeline", []),
            training_mode=state.get("training_mode", False),
        )
    except (ValueError, CaseStorageError) as exc:
        raise _http_error(exc) from exc
    return case.model_dump()


@app.post("/api/sessions/{thread_id}/export")
async def export_anamnesis(thread_id: str, request: TextRequest | None = None) -> Response:
    state = _get_session(thread_id)
    data = state.get("final_anamnesis") or state["anamnesis"]
    text = request.text if request else format_anamnesis_for_editing(data)
    pdf = await run_in_threadpool(export_pdf, text)
    filename = export_filename(data)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )


@app.post("/api/sessions/{thread_id}/{action}", response_model=SessionResponse)
async def session_action(thread_id: str, action: str, payload: dict = Body(default={}),
                         service: GeminiService = Depends(get_service)) -> SessionResponse:
    if action not in ACTIONS:
        raise HTTPException(status_code=404, detail=f"Ação desconhecida: {action}")
    return await _run_action(thread_id, action, service, **payload)


################ Saved cases ################
@app.get("/api/cases")
async def list_cases(store: CaseStore = Depends(get_store)):
    return [case.model_dump() for case in store.list_cases()]


@app.post("/api/cases/{case_id}/load", response_model=SessionResponse)
async def load_case(case_id: str, thread_id: str, store: CaseStore = Depends(get_store),
                    service: GeminiService = Depends(get_service)) -> SessionResponse:
    case = store.get_case(case_id)
    if case is None:
        raise HTTPException(status_code=404, detail="Caso não encontrado.")
    return await _run_action(thread_id, "load_case", service, case=case.model_dump())


@app.delete("/api/cases/{case_id}")
async def delete_case(case_id: str, store: CaseStore = Depends(get_store)):
    try:
        deleted = store.delete_case(case_id)
    except CaseStorageError as exc:
        raise _http_error(exc) from exc
    if not deleted:
        raise HTTPException(status_code=404, detail="Caso não encontrado.")
    return {"status": "success"}


@app.get("/api/api-key")
async def api_key_status(store: CaseStore = Depends(get_store)):
    return {"configured": bool(store.get_api_key() or os.getenv("GOOGLE_API_KEY"))}


@app.put("/api/api-key")
async def save_api_key(request: ApiKeyRequest, store: CaseStore = Depends(get_store)):
    if not request.api_key.strip():
        raise HTTPException(status_code=400, detail="Informe uma chave de API válida.")
    try:
        store.save_api_key(request.api_key)
    except CaseStorageError as exc:
        raise _http_error(exc) from exc
    return {"configured": True}


################ Direct AI helpers ################
@app.post("/api/summary")
async def prontuary_summary(request: TextRequest, service: GeminiService = Depends(get_service)):
    try:
        summary = await service.generate_prontuary_summary(request.text)
    except ServiceError as exc:
        raise _http_error(exc) from exc
    return {"summary": summary}


@app.get("/api/publications")
async def academic_publications(name: str, service: GeminiService = Depends(get_service)):
    try:
        result = await service.fetch_academic_publications(name)
    except ServiceError as exc:
        raise _http_error(exc) from exc
    return result.model_dump()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=8000)
