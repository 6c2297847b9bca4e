"""
PubChem PUG-REST connector.

Looks up structured chemical properties for a substance by CID, resolving
the CID by name first when the catalogue did not provide one.

Contract:
- Never raises past ``fetch``; every outcome is a ChemicalLookupResult
- "No such compound" (404, empty identifier list) is ``not_found``
- Any other HTTP error, timeout or transport failure is ``error``
- No retries; the caller decides what to do with an error
"""

import httpx
from typing import Optional, Dict, Any, List
from urllib.parse import quote
from core.config import settings
from core.exceptions import ChemicalLookupError, ChemicalNotFoundError, ChemicalProviderError
from schemas.imports import ChemicalFacts, ChemicalLookupResult, LookupStatus
import logging

logger = logging.getLogger(__name__)


class PubChemConnector:
    """
    Fetch IUPAC name, formula, weight and synonyms from PubChem.

    Attributes:
        base_url: PUG-REST root URL
        timeout: Per-request timeout in seconds
        synonym_limit: Maximum number of synonyms kept
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        synonym_limit: Optional[int] = None
    ):
        self.client = client
        self.base_url = (base_url or settings.PUBCHEM_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.PUBCHEM_TIMEOUT_SECONDS
        self.synonym_limit = synonym_limit or settings.PUBCHEM_SYNONYM_LIMIT

    async def fetch(self, label: str, ref_id: Optional[int] = None) -> ChemicalLookupResult:
        """
        Look up a compound by CID, or by name when no CID is known.

        Args:
            label: Substance name used for CID resolution
            ref_id: Known PubChem CID (optional)

        Returns:
            ChemicalLookupResult with status ok, not_found or error
        """
        try:
            if self.client is not None:
                facts = await self._lookup(self.client, label, ref_id)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    facts = await self._lookup(client, label, ref_id)

            return ChemicalLookupResult(status=LookupStatus.OK, data=facts)

        except ChemicalNotFoundError as e:
            logger.info(f"PubChem has no record for '{label}'", extra={"error_context": e.to_dict()})
            return ChemicalLookupResult(status=LookupStatus.NOT_FOUND)

        except ChemicalLookupError as e:
            logger.warning(f"PubChem lookup failed for '{label}': {e.message}", extra={"error_context": e.to_dict()})
            return ChemicalLookupResult(status=LookupStatus.ERROR, error=e.message)

        except Exception as e:
            logger.exception(f"Unexpected PubChem error for '{label}'")
            return ChemicalLookupResult(status=LookupStatus.ERROR, error=str(e) or type(e).__name__)

    async def _lookup(self, client: httpx.AsyncClient, label: str, ref_id: Optional[int]) -> ChemicalFacts:
        cid = ref_id if ref_id and ref_id > 0 else await self._resolve_cid(client, label)

        props_url = (
            f"{self.base_url}/compound/cid/{cid}"
            f"/property/IUPACName,MolecularFormula,MolecularWeight/JSON"
        )
        props_data = await self._get_json(client, props_url)
        properties = props_data.get("PropertyTable", {}).get("Properties") or [{}]
        props = properties[0]

        synonyms = await self._fetch_synonyms(client, cid)

        return ChemicalFacts(
            cid=cid,
            iupac_name=props.get("IUPACName"),
            molecular_formula=props.get("MolecularFormula"),
            molecular_weight=props.get("MolecularWeight"),
            synonyms=synonyms
        )

    async def _resolve_cid(self, client: httpx.AsyncClient, label: str) -> int:
        if not label:
            raise ChemicalNotFoundError("No label to resolve", context={"label": label})

        url = f"{self.base_url}/compound/name/{quote(label, safe='')}/cids/JSON"
        data = await self._get_json(client, url)
        cids = data.get("IdentifierList", {}).get("CID") or []

        if not cids:
            raise ChemicalNotFoundError(
                f"No CID for name '{label}'",
                context={"label": label, "url": url}
            )
        return int(cids[0])

    async def _fetch_synonyms(self, client: httpx.AsyncClient, cid: int) -> List[str]:
        """Synonyms are best-effort: any failure yields an empty list."""
        url = f"{self.base_url}/compound/cid/{cid}/synonyms/JSON"
        try:
            data = await self._get_json(client, url)
        except ChemicalLookupError as e:
            logger.debug(f"Synonyms unavailable for CID {cid}: {e.message}")
            return []

        information = data.get("InformationList", {}).get("Information") or [{}]
        synonyms = information[0].get("Synonym") or []
        return [s for s in synonyms if isinstance(s, str)][:self.synonym_limit]

    async def _get_json(self, client: httpx.AsyncClient, url: str) -> Dict[str, Any]:
        try:
            response = await client.get(url, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise ChemicalProviderError(
                "PubChem request timed out",
                context={"url": url, "timeout": self.timeout},
                original_exception=e
            )
        except httpx.HTTPError as e:
            raise ChemicalProviderError(
                f"PubChem network error: {type(e).__name__}",
                context={"url": url},
                original_exception=e
            )

        if response.status_code == 404:
            raise ChemicalNotFoundError("PubChem returned 404", context={"url": url, "status_code": 404})

        if response.status_code >= 400:
            raise ChemicalProviderError(
                f"HTTP {response.status_code}",
                context={"url": url, "status_code": response.status_code}
            )

        try:
            return response.json()
        except ValueError as e:
            raise ChemicalProviderError(
                "PubChem returned invalid JSON",
                context={"url": url, "status_code": response.status_code},
                original_exception=e
            )
