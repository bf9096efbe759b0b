import asyncio
from typing import Dict, List, Optional, Set

from semiologix.checklist import anamnesis_text, is_item_present
from semiologix.config import logger
from semiologix.errors import ServiceError
from semiologix.gemini_service import GeminiService
from semiologix.reconciler import merge_details
from semiologix.schemas import AnamnesisData, Diagnosis, DiagnosisDetail, MergedDetails


class DetailInvestigation:
    """
    Detail view for a selection of diagnoses.

    One detail request per selected diagnosis runs concurrently and each result is
    stored as it arrives. Opening a new selection or closing the view bumps the
    generation, so answers from older requests are dropped.
    """

    def __init__(self, service: GeminiService):
        self.service = service
        self.generation = 0
        self.selected: List[Diagnosis] = []
        self.anamnesis: Optional[AnamnesisData] = None
        self.details: Dict[str, Optional[DiagnosisDetail]] = {}
        self.loading: Dict[str, bool] = {}
        self.errors: Dict[str, str] = {}
        self._tasks: List[asyncio.Task] = []
        # Tasks of every generation stay referenced until they finish
        self._pending: Set[asyncio.Task] = set()

    def open(self, anamnesis: AnamnesisData, diagnoses: List[Diagnosis]) -> int:
        """Start fetching details for every selected diagnosis. Must run inside an event loop."""
        self.close()
        self.anamnesis = anamnesis
        self.selected = list(diagnoses)
        for diagnosis in self.selected:
            self.details[diagnosis.name] = None
            self.loading[diagnosis.name] = True
            task = asyncio.create_task(self._fetch(self.generation, anamnesis, diagnosis))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            self._tasks.append(task)
        logger.info(f"Fetching details for {len(self.selected)} diagnoses (generation {self.generation})")
        return self.generation

    async def _fetch(self, generation: int, anamnesis: AnamnesisData, diagnosis: Diagnosis) -> None:
        try:
            detail = await self.service.fetch_diagnosis_details(anamnesis, diagnosis)
            error = None
        except ServiceError as e:
            detail, error = None, str(e)

        if generation != self.generation:
            logger.info(f"Discarding stale details for {diagnosis.name}")
            return
        self.details[diagnosis.name] = detail
        self.loading[diagnosis.name] = False
        if error:
            self.errors[diagnosis.name] = error

    def close(self) -> None:
        self.generation += 1
        self.selected = []
        self.anamnesis = None
        self.details = {}
        self.loading = {}
        self.errors = {}
        self._tasks = []

    async def wait(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks)

    @property
    def is_loading(self) -> bool:
        return any(self.loading.values())

    @property
    def combined_error(self) -> Optional[str]:
        if not self.errors:
            return None
        return " ".join(self.errors[d.name] for d in self.selected if d.name in self.errors)

    def merged(self) -> MergedDetails:
        return merge_details(self.selected, self.details)

    def checklist_status(self, anamnesis: Optional[AnamnesisData] = None) -> List[dict]:
        text = anamnesis_text(anamnesis or self.anamnesis or AnamnesisData())
        return [
            {"item": entry.item.item, "rationale": entry.item.rationale, "sources": entry.sources, "present": is_item_present(entry.item, text)}
            for entry in self.merged().checklist
        ]

    def snapshot(self, anamnesis: Optional[AnamnesisData] = None) -> dict:
        merged = self.merged()
        return {
            "generation": self.generation,
            "selected": [d.model_dump() for d in self.selected],
            "loading": self.is_loading,
            "error": self.combined_error,
            "checklist": self.checklist_status(anamnesis),
            "plan": merged.plan.model_dump(),
        }
