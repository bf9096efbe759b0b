import asyncio
from dataclasses import dataclass, field
from typing import List, Optional

from semiologix.config import logger, MIN_ANALYSIS_TEXT
from semiologix.errors import InsufficientDataError
from semiologix.gemini_service import GeminiService
from semiologix.reconciler import ReconciledDiagnoses, reconcile_diagnoses
from semiologix.schemas import AnamnesisData, TimelineEvent


@dataclass
class AnalysisResult:
    diagnoses: ReconciledDiagnoses
    timeline: List[TimelineEvent] = field(default_factory=list)


def validate_for_analysis(anamnesis: AnamnesisData) -> None:
    combined = f"{anamnesis.chief_complaint} {anamnesis.hpi}".strip()
    if len(combined) < MIN_ANALYSIS_TEXT:
        raise InsufficientDataError(
            "Por favor, preencha a Queixa Principal e a HDA com mais detalhes antes de analisar."
        )


async def _reuse(timeline: List[TimelineEvent]) -> List[TimelineEvent]:
    return timeline


async def run_analysis(
    service: GeminiService,
    anamnesis: AnamnesisData,
    existing_timeline: Optional[List[TimelineEvent]] = None,
) -> AnalysisResult:
    """
    Fetch diagnoses and the HPI timeline concurrently and reconcile the diagnoses.

    Nothing is returned until both calls finish, so callers update their state
    all at once. A ServiceError from the diagnosis call propagates; the timeline
    is best effort.

    Args:
        service: AI service
        anamnesis: Data to analyse
        existing_timeline: Timeline to reuse instead of extracting it again

    Returns:
        AnalysisResult with the reconciled diagnoses and the timeline
    """
    if existing_timeline:
        timeline_call = _reuse(existing_timeline)
    else:
        timeline_call = service.fetch_timeline(anamnesis.hpi)

    response, timeline = await asyncio.gather(service.fetch_diagnoses(anamnesis), timeline_call)
    diagnoses = reconcile_diagnoses(response.probable, response.differential)
    logger.info(f"Analysis done: {len(diagnoses.probable)} probable, "
                f"{len(diagnoses.differential)} differential, {len(timeline)} timeline events")
    return AnalysisResult(diagnoses=diagnoses, timeline=timeline)
