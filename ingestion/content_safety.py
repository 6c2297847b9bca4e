"""
Content-safety filter applied to generated text.

The generative connector only depends on the ``ContentFilter`` interface;
``PatternContentFilter`` is the default rule set (German and English).
Flagged sentences are removed, the rest of the text is kept.
"""

from abc import ABC, abstractmethod
from typing import List, Tuple
import re

from pydantic import BaseModel, Field


class SafetyViolation(BaseModel):
    category: str
    match: str
    index: int


class SafetyCheckResult(BaseModel):
    clean: str
    violations: List[SafetyViolation] = Field(default_factory=list)

    @property
    def has_flagged_content(self) -> bool:
        return len(self.violations) > 0

    @property
    def passed(self) -> bool:
        return not self.has_flagged_content


class ContentFilter(ABC):
    """Black-box text check: returns cleaned text plus the violations found."""

    @abstractmethod
    def check(self, text: str) -> SafetyCheckResult:
        pass


PROHIBITED_PATTERNS: List[Tuple[str, str]] = [
    # Dosage / consumption instructions
    (r"\b(dosier|dosierung|dosis|dose|dosage|dosages)\b", "dosage"),
    (r"\b(einnehm|einnahme|konsumier|konsumhinweis|verabreich)\b", "consumption"),
    (r"\b(how\s+to\s+(take|use|consume|ingest|inject|smoke|snort|insufflat))\b", "how-to-use"),
    (r"\b(wie\s+(man|du)\s+(nimmt|nehmen|konsumier|einnimmt|raucht|schnupft|injizier|spritzt))\b", "how-to-use"),
    (r"\b(route\s+of\s+administration|administration\s+route|ROA)\b", "administration"),
    (r"\b(oral|intraven(ö|o)s|intranasal|sublingual|rektal|intramuskulär)\s+(einnehmen|nehmen|verabreich)", "administration"),
    (r"\b(mg\s*/\s*kg|milligram(m)?\s+pro\s+kilogramm)\b", "dosage"),
    (r"\b(threshold|light|common|strong|heavy)\s+(dose|dosage)\b", "dosage"),
    (r"\b(Schwellendosis|leichte\s+Dosis|mittlere\s+Dosis|starke\s+Dosis)\b", "dosage"),
    # Purchase / sourcing
    (r"\b(kaufen|bestellen|order|buy|purchase|beziehen|beschaffen|erwerben)\b", "purchase"),
    (r"\b(vendor|dealer|h(ä|ae)ndler|shop|darknet|clearnet|marketplace)\b", "purchase"),
    (r"\b(Bezugsquelle|Bezugsinfo|sourcing)\b", "purchase"),
    # Preparation / synthesis
    (r"\b(synthes[ie]|herstell|kochen|cook|extract|extrahier|herstellung|zubereitung)\b", "synthesis"),
    (r"\b(recipe|rezept|anleitung\s+zur\s+herstellung)\b", "synthesis"),
]

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")


class PatternContentFilter(ContentFilter):
    """Regex rule set; the first matching rule flags a sentence."""

    def __init__(self, patterns: List[Tuple[str, str]] = None):
        self.patterns = [
            (re.compile(pattern, re.IGNORECASE), category)
            for pattern, category in (patterns or PROHIBITED_PATTERNS)
        ]

    def check(self, text: str) -> SafetyCheckResult:
        if not text:
            return SafetyCheckResult(clean="")

        violations = []
        kept = []

        for sentence in _SENTENCE_SPLIT.split(text):
            for pattern, category in self.patterns:
                match = pattern.search(sentence)
                if match:
                    violations.append(
                        SafetyViolation(
                            category=category,
                            match=match.group(0),
                            index=text.find(sentence)
                        )
                    )
                    break
            else:
                kept.append(sentence)

        return SafetyCheckResult(clean=" ".join(kept).strip(), violations=violations)
