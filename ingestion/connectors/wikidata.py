"""
Wikidata SPARQL catalogue listing.

Produces CandidateItems for the enrichment runner. Callers page through the
catalogue with limit/offset; each page becomes one bounded batch.
"""

import httpx
from typing import List, Optional, Dict, Any
from core.config import settings
from schemas.imports import CandidateItem
import logging

logger = logging.getLogger(__name__)

ENTITY_PREFIX = "http://www.wikidata.org/entity/"

CANDIDATE_QUERY = """
SELECT DISTINCT ?item ?pubchemCID ?itemLabel ?itemDescription WHERE {{
  ?item wdt:P31/wdt:P279* wd:{category} .
  OPTIONAL {{ ?item wdt:P662 ?pubchemCID . }}
  SERVICE wikibase:label {{ bd:serviceParam wikibase:language "de,en" . }}
}}
ORDER BY ?itemLabel
LIMIT {limit}
OFFSET {offset}
""".strip()


def parse_bindings(bindings: List[Dict[str, Any]]) -> List[CandidateItem]:
    """Turn SPARQL result bindings into unique CandidateItems (first QID wins)."""
    seen = set()
    items = []

    for binding in bindings:
        qid = binding.get("item", {}).get("value", "").replace(ENTITY_PREFIX, "")
        if not qid or qid in seen:
            continue
        seen.add(qid)

        cid_raw = binding.get("pubchemCID", {}).get("value")
        try:
            cid = int(cid_raw) if cid_raw else None
        except ValueError:
            cid = None

        items.append(
            CandidateItem(
                external_id=qid,
                label=binding.get("itemLabel", {}).get("value", ""),
                description=binding.get("itemDescription", {}).get("value", ""),
                chemical_ref_id=cid
            )
        )

    return items


class WikidataCatalogue:
    """Lists candidate substances from a Wikidata class hierarchy."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        endpoint: Optional[str] = None,
        category_qid: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        self.client = client
        self.endpoint = endpoint or settings.WIKIDATA_SPARQL_URL
        self.category_qid = category_qid or settings.WIKIDATA_CATEGORY_QID
        self.timeout = timeout or settings.WIKIDATA_TIMEOUT_SECONDS

    async def list_candidates(self, limit: int = 50, offset: int = 0) -> List[CandidateItem]:
        """
        Fetch one page of catalogue items.

        Raises:
            httpx.HTTPError: on transport failure or non-2xx response
        """
        query = CANDIDATE_QUERY.format(category=self.category_qid, limit=limit, offset=offset)
        params = {"query": query, "format": "json"}
        headers = {
            "Accept": "application/sparql-results+json",
            "User-Agent": settings.WIKIDATA_USER_AGENT
        }

        if self.client is not None:
            response = await self.client.get(self.endpoint, params=params, headers=headers, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.endpoint, params=params, headers=headers)

        response.raise_for_status()
        bindings = response.json().get("results", {}).get("bindings", [])
        items = parse_bindings(bindings)

        logger.info(f"Wikidata listing returned {len(items)} items (limit={limit}, offset={offset})")
        return items
