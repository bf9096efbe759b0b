"""
Heuristic that tells whether a checklist item is already answered in the anamnesis.

Only a UI hint: false positives and negatives are expected.
"""
import math
import re
import unicodedata
from dataclasses import dataclass
from typing import Dict, List

from semiologix.schemas import AnamnesisData, ChecklistItem, HIDDEN_FIELDS

STOP_WORDS = frozenset([
    "a", "o", "e", "ou", "de", "do", "da", "em", "um", "uma", "com", "por", "para",
    "sem", "tem", "houve", "qual", "quando", "como", "onde", "se", "esta", "este",
    "seu", "sua", "ha", "sobre", "paciente", "refere",
])

SYNONYMS: Dict[str, List[str]] = {
    "toracica": ["toracica", "peito", "precordial", "precordio"],
    "cefaleia": ["cefaleia", "cabeca"],
    "dispneia": ["dispneia", "ar", "respirar", "respiracao", "folego"],
    "membros": ["membros", "pernas", "bracos"],
    "inferiores": ["inferiores", "pernas", "mmii"],
    "superiores": ["superiores", "bracos", "mmss"],
    "febre": ["febre", "febril", "temperatura"],
    "sudorese": ["sudorese", "suor", "diaforese"],
}

MIN_KEYWORD_LENGTH = 3
REQUIRED_RATIO = 0.75


@dataclass
class ChecklistMatch:
    keywords: List[str]
    found: List[str]

    @property
    def required(self) -> int:
        n = len(self.keywords)
        return min(n, math.ceil(n * REQUIRED_RATIO))

    @property
    def present(self) -> bool:
        return bool(self.keywords) and len(self.found) >= self.required


def normalize_text(text: str) -> str:
    """Lowercase, strip diacritics and punctuation."""
    decomposed = unicodedata.normalize("NFD", text.lower())
    without_marks = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return re.sub(r"[^\w\s]", "", without_marks)


def extract_keywords(item: str) -> List[str]:
    return [
        word for word in normalize_text(item).split()
        if len(word) >= MIN_KEYWORD_LENGTH and word not in STOP_WORDS
    ]


def match_checklist_item(item: str, anamnesis: str) -> ChecklistMatch:
    normalized = normalize_text(anamnesis)
    keywords = extract_keywords(item)
    found = [
        keyword for keyword in keywords
        if any(synonym in normalized for synonym in SYNONYMS.get(keyword, [keyword]))
    ]
    return ChecklistMatch(keywords=keywords, found=found)


def is_item_present(item: ChecklistItem | str, anamnesis: str) -> bool:
    text = item.item if isinstance(item, ChecklistItem) else item
    return match_checklist_item(text, anamnesis).present


def anamnesis_text(data: AnamnesisData) -> str:
    # Hidden training fields would leak the answer
    values = data.model_dump(exclude=set(HIDDEN_FIELDS))
    return " ".join(value for value in values.values() if value)
