"""
Generative enrichment: structured qualitative text for a substance.

The enricher never raises. Outcomes:
- skipped: no provider configured
- ok: valid, clean answer
- failed: provider error, unparseable answer after one corrective retry,
  or an answer the content filter had to clean (data is still returned)
"""

from typing import Optional, Dict, Any, List
import json
from pydantic import ValidationError
from ingestion.connectors.providers import GenerativeProvider
from ingestion.content_safety import ContentFilter, PatternContentFilter
from core.exceptions import GenerativeProviderError, GenerativeOutputError, GenerativeSkippedError
from schemas.imports import GenerativeEnrichment, GenerativeResult, GenerativeStatus
import logging

logger = logging.getLogger(__name__)

CONTENT_FILTERED_MESSAGE = "Content safety filter applied"

SYSTEM_PROMPT = """Du bist ein wissenschaftlicher Redaktionsassistent für ein deutschsprachiges Nachschlagewerk über psychoaktive Substanzen.

REGELN:
- Schreibe sachlich, neutral und an Schadensminimierung orientiert
- KEINE konkreten Dosierungs- oder Konsumanleitungen, keine Mengenangaben
- KEINE Hinweise zu Beschaffung, Kauf oder Herstellung
- Dosierung nur qualitativ beschreiben (niedrig, moderat, hoch)
- Antworte IMMER mit einem einzigen gültigen JSON-Objekt im verlangten Schema
- Sprache: Deutsch"""

RESPONSE_SCHEMA = """{
  "overview": "Kurze wissenschaftliche Übersicht (2-3 Sätze)",
  "effects": "Pharmakologische Wirkungen (qualitativ)",
  "risks": "Bekannte Risiken und Nebenwirkungen",
  "harm_reduction": "Allgemeine Hinweise zur Schadensminimierung",
  "interactions": "Bekannte Wechselwirkungen",
  "dosage_notes": "Allgemeine Sicherheitshinweise, nur qualitativ",
  "legal_status_notes": "Allgemeine rechtliche Einordnung",
  "sources": ["Referenzen oder Datenbanken als Strings"]
}"""

CORRECTIVE_PREFIX = (
    "Deine letzte Antwort war kein gültiges JSON im verlangten Schema ({problem}). "
    "Antworte erneut, ausschließlich mit einem JSON-Objekt mit genau diesen Feldern:\n"
)


def build_corrective_prompt(problem: str) -> str:
    # RESPONSE_SCHEMA holds literal braces and must stay out of str.format
    return CORRECTIVE_PREFIX.format(problem=problem) + RESPONSE_SCHEMA


def build_enrichment_prompt(name: str, description: str = "", context: Optional[Dict[str, Any]] = None) -> str:
    """User prompt for one substance, with optional chemical context."""
    context = context or {}
    lines = [f'Erstelle eine strukturierte wissenschaftliche Zusammenfassung für die Substanz "{name}".']

    if description:
        lines.append(f"Beschreibung: {description}")
    if context.get("molecular_formula"):
        lines.append(f"Summenformel: {context['molecular_formula']}")
    if context.get("synonyms"):
        lines.append(f"Synonyme: {', '.join(context['synonyms'][:5])}")

    lines.append("")
    lines.append("Antworte als JSON-Objekt mit folgendem Schema:")
    lines.append(RESPONSE_SCHEMA)
    lines.append("Nur JSON zurückgeben, keine Markdown-Codeblöcke.")
    return "\n".join(lines)


def parse_enrichment(text: str, provider_name: str, attempt: int) -> GenerativeEnrichment:
    """
    Parse a provider answer into the enrichment schema.

    Raises:
        GenerativeOutputError: invalid JSON or schema mismatch
    """
    try:
        payload = json.loads(text)
    except ValueError as e:
        raise GenerativeOutputError(
            "invalid JSON",
            context={"provider": provider_name, "attempt": attempt},
            original_exception=e
        )

    if not isinstance(payload, dict):
        raise GenerativeOutputError(
            "answer is not a JSON object",
            context={"provider": provider_name, "attempt": attempt}
        )

    try:
        return GenerativeEnrichment.model_validate(payload)
    except ValidationError as e:
        missing = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
        raise GenerativeOutputError(
            f"schema mismatch: {', '.join(missing)}",
            context={"provider": provider_name, "attempt": attempt},
            original_exception=e
        )


class GenerativeEnricher:
    """
    Runs the configured provider and validates + filters its answer.

    Attributes:
        provider: Active completion provider, or None when disabled
        content_filter: Filter applied to every free-text field
        max_attempts: First try plus one corrective retry
    """

    max_attempts = 2

    def __init__(
        self,
        provider: Optional[GenerativeProvider],
        content_filter: Optional[ContentFilter] = None
    ):
        self.provider = provider
        self.content_filter = content_filter or PatternContentFilter()

    @property
    def enabled(self) -> bool:
        return self.provider is not None

    async def enrich(
        self,
        name: str,
        description: str = "",
        context: Optional[Dict[str, Any]] = None
    ) -> GenerativeResult:
        try:
            enrichment = await self._complete_with_retry(name, description, context)
        except GenerativeSkippedError as e:
            logger.debug(f"Generative enrichment skipped for '{name}': {e.message}")
            return GenerativeResult(status=GenerativeStatus.SKIPPED, error=e.message)
        except (GenerativeProviderError, GenerativeOutputError) as e:
            logger.warning(
                f"Generative enrichment failed for '{name}': {e.message}",
                extra={"error_context": e.to_dict()}
            )
            return GenerativeResult(status=GenerativeStatus.FAILED, error=e.message)
        except Exception as e:
            logger.exception(f"Unexpected generative enrichment error for '{name}'")
            return GenerativeResult(status=GenerativeStatus.FAILED, error=str(e) or type(e).__name__)

        filtered, flagged_fields = self._apply_content_filter(enrichment)
        if flagged_fields:
            logger.warning(f"Content filter cleaned fields {flagged_fields} for '{name}'")
            return GenerativeResult(
                status=GenerativeStatus.FAILED,
                data=filtered,
                error=CONTENT_FILTERED_MESSAGE
            )

        return GenerativeResult(status=GenerativeStatus.OK, data=filtered)

    async def _complete_with_retry(
        self,
        name: str,
        description: str,
        context: Optional[Dict[str, Any]]
    ) -> GenerativeEnrichment:
        if self.provider is None:
            raise GenerativeSkippedError("No generative provider configured", context={"substance": name})

        messages: List[Dict[str, str]] = [
            {"role": "user", "content": build_enrichment_prompt(name, description, context)}
        ]

        for attempt in range(1, self.max_attempts + 1):
            # Provider errors propagate immediately; only bad output is retried
            text = await self.provider.complete(SYSTEM_PROMPT, messages)

            try:
                return parse_enrichment(text, self.provider.name, attempt)
            except GenerativeOutputError as e:
                if attempt >= self.max_attempts:
                    raise
                logger.info(f"Malformed answer for '{name}' ({e.message}), sending corrective prompt")
                messages = messages + [
                    {"role": "assistant", "content": text},
                    {"role": "user", "content": build_corrective_prompt(e.message)}
                ]

    def _apply_content_filter(self, enrichment: GenerativeEnrichment):
        values = enrichment.model_dump()
        flagged_fields = []

        for field in GenerativeEnrichment.text_fields():
            check = self.content_filter.check(values.get(field) or "")
            if check.has_flagged_content:
                values[field] = check.clean
                flagged_fields.append(field)

        return GenerativeEnrichment(**values), flagged_fields
