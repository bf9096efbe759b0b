import json
import time
from datetime import datetime
from typing import List, Optional

from semiologix.config import logger, DATA_FILE
from semiologix.errors import CaseStorageError
from semiologix.schemas import AnamnesisData, Diagnosis, SavedCase, TimelineEvent
from semiologix.utils import export_json, import_json


class CaseStore:
    """
    Saved cases and the user's API key, kept in one JSON file.

    The file is read once at startup and rewritten on every change. When a
    write fails the change is kept in memory and CaseStorageError is raised.
    """

    def __init__(self, path: str = DATA_FILE):
        self.path = path
        self.api_key: Optional[str] = None
        self.cases: List[SavedCase] = []
        self._load()

    def _load(self) -> None:
        try:
            data = import_json(self.path)
        except FileNotFoundError:
            return
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Could not read {self.path}, starting empty: {e}")
            return
        if not isinstance(data, dict):
            logger.error(f"Unexpected content in {self.path}, starting empty")
            return

        self.api_key = data.get("api_key") or None
        for raw in data.get("cases") or []:
            try:
                self.cases.append(SavedCase.model_validate(raw))
            except ValueError as e:
                logger.warning(f"Skipping invalid saved case: {e}")

    def _persist(self) -> None:
        payload = {
            "api_key": self.api_key,
            "cases": [case.model_dump() for case in self.cases],
        }
        try:
            export_json(payload, self.path)
        except OSError as e:
            logger.error(f"Error writing {self.path}: {e}")
            raise CaseStorageError("Não foi possível salvar os dados localmente.") from e

    def get_api_key(self) -> Optional[str]:
        return self.api_key

    def save_api_key(self, api_key: str) -> None:
        self.api_key = api_key.strip() or None
        self._persist()

    def list_cases(self) -> List[SavedCase]:
        return list(self.cases)

    def get_case(self, case_id: str) -> Optional[SavedCase]:
        return next((case for case in self.cases if case.id == case_id), None)

    def save_case(
        self,
        anamnesis: AnamnesisData,
        diagnoses: List[Diagnosis],
        differential_diagnoses: List[Diagnosis],
        timeline: List[TimelineEvent],
        training_mode: bool = False,
    ) -> SavedCase:
        """
        Save the current case as the newest entry.

        Args:
            anamnesis: Current anamnesis, must have a chief complaint
            diagnoses: Probable diagnoses shown for the case
            differential_diagnoses: Differential diagnoses shown for the case
            timeline: HPI timeline
            training_mode: Simulated cases are never saved

        Returns:
            The saved case
        """
        if training_mode:
            raise ValueError("Casos de treinamento não podem ser salvos.")
        if not anamnesis.chief_complaint.strip():
            raise ValueError("Preencha pelo menos a Queixa Principal para salvar o caso.")

        now = datetime.now()
        # Millisecond timestamp, bumped on the rare collision
        case_id = int(time.time() * 1000)
        while self.get_case(str(case_id)):
            case_id += 1
        case = SavedCase(
            id=str(case_id),
            name=f"Paciente - {now.strftime('%d/%m/%Y %H:%M:%S')}",
            saved_at=now.isoformat(),
            anamnesis=anamnesis,
            diagnoses=diagnoses,
            differential_diagnoses=differential_diagnoses,
            timeline=timeline,
        )
        self.cases.insert(0, case)
        logger.info(f"Saved case {case.id}")
        self._persist()
        return case

    def delete_case(self, case_id: str) -> bool:
        remaining = [case for case in self.cases if case.id != case_id]
        if len(remaining) == len(self.cases):
            return False
        self.cases = remaining
        logger.info(f"Deleted case {case_id}")
        self._persist()
        return True
