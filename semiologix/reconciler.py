from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from semiologix.config import PROBABLE_THRESHOLD
from semiologix.schemas import (
    ChecklistItem,
    Diagnosis,
    DiagnosisDetail,
    ManagementPlan,
    MergedChecklistItem,
    MergedDetails,
)


@dataclass
class ReconciledDiagnoses:
    probable: List[Diagnosis] = field(default_factory=list)
    differential: List[Diagnosis] = field(default_factory=list)

    def all_ranked(self) -> List[Diagnosis]:
        """Both partitions as a single list, most probable first."""
        return sorted(self.probable + self.differential, key=lambda d: d.probability, reverse=True)


def deduplicate(diagnoses: Iterable[Diagnosis]) -> List[Diagnosis]:
    """Keep one entry per case-insensitive name, the most probable one (first seen on ties)."""
    unique: Dict[str, Diagnosis] = {}
    for diagnosis in diagnoses:
        key = diagnosis.name.lower()
        existing = unique.get(key)
        if existing is None or diagnosis.probability > existing.probability:
            unique[key] = diagnosis
    return list(unique.values())


def reconcile_diagnoses(
    probable: Sequence[Diagnosis],
    differential: Sequence[Diagnosis],
    threshold: int = PROBABLE_THRESHOLD,
) -> ReconciledDiagnoses:
    """
    Merge the two lists returned by one diagnosis call into a consistent ranking.

    The model's own categorisation is ignored: entries are deduplicated by name,
    then bucketed by probability (> threshold is probable) and sorted descending.

    Args:
        probable: Diagnoses the model labelled as probable
        differential: Diagnoses the model labelled as differential
        threshold: Probability above which a diagnosis is probable

    Returns:
        ReconciledDiagnoses with both partitions sorted by probability
    """
    unique = deduplicate(list(probable or []) + list(differential or []))

    def by_probability(items):
        return sorted(items, key=lambda d: d.probability, reverse=True)

    return ReconciledDiagnoses(
        probable=by_probability(d for d in unique if d.probability > threshold),
        differential=by_probability(d for d in unique if d.probability <= threshold),
    )


def merge_details(
    selected: Sequence[Diagnosis],
    details: Mapping[str, Optional[DiagnosisDetail]],
) -> MergedDetails:
    """
    Union the details fetched for several diagnoses into one view.

    Checklist items are keyed by their exact text and remember every diagnosis
    that asked for them. Plan entries are deduplicated and lose their origin.

    Args:
        selected: Diagnoses in selection order, drives checklist order
        details: Detail per diagnosis name, None while loading or on error

    Returns:
        MergedDetails (empty when no detail has arrived yet)
    """
    checklist: Dict[str, MergedChecklistItem] = {}
    for diagnosis in selected:
        detail = details.get(diagnosis.name)
        if detail is None:
            continue
        for checklist_item in detail.checklist:
            merged = checklist.get(checklist_item.item)
            if merged is None:
                checklist[checklist_item.item] = MergedChecklistItem(
                    item=ChecklistItem(item=checklist_item.item, rationale=checklist_item.rationale),
                    sources=[diagnosis.name],
                )
            elif diagnosis.name not in merged.sources:
                merged.sources.append(diagnosis.name)

    # dicts keep insertion order, which keeps the merged plan stable
    tests, medications, referrals = {}, {}, {}
    for detail in details.values():
        if detail is None:
            continue
        tests.update(dict.fromkeys(detail.plan.confirmation_tests))
        medications.update(dict.fromkeys(detail.plan.suggested_medications))
        referrals.update(dict.fromkeys(detail.plan.referrals))

    return MergedDetails(
        checklist=list(checklist.values()),
        plan=ManagementPlan(
            confirmation_tests=list(tests),
            suggested_medications=list(medications),
            referrals=list(referrals),
        ),
    )
