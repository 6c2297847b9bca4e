"""
Name canonicalization and batch deduplication for substance imports.

Every name that enters the catalogue passes through here first, so that
"Kratom", "kratom " and "KRATOM (extract)" end up as one record.
"""

from typing import List, Dict
import csv
import io
import re
import unicodedata
import logging

import pandas as pd

from schemas.imports import DeduplicatedEntry, DelimitedEntry

logger = logging.getLogger(__name__)


# Lower-cased alias -> canonical display name (many-to-one)
SYNONYM_MAP: Dict[str, str] = {
    "acid": "LSD",
    "lucy": "LSD",
    "lysergic acid diethylamide": "LSD",
    "magic mushrooms": "Psilocybin",
    "shrooms": "Psilocybin",
    "psilocin": "Psilocybin",
    "ecstasy": "MDMA",
    "molly": "MDMA",
    "speed": "Amphetamin",
    "amphetamine": "Amphetamin",
    "crystal meth": "Methamphetamin",
    "ice": "Methamphetamin",
    "methamphetamine": "Methamphetamin",
    "crack": "Kokain",
    "coke": "Kokain",
    "cocaine": "Kokain",
    "k": "Ketamin",
    "special k": "Ketamin",
    "ketamine": "Ketamin",
    "heroine": "Heroin",
    "diacetylmorphine": "Heroin",
    "morphine": "Morphin",
    "codeine": "Codein",
    "oxycodone": "Oxycodon",
    "methadone": "Methadon",
    "buprenorphine": "Buprenorphin",
    "xanax": "Alprazolam",
    "valium": "Diazepam",
    "ativan": "Lorazepam",
    "klonopin": "Clonazepam",
    "ambien": "Zolpidem",
    "ritalin": "Methylphenidat",
    "concerta": "Methylphenidat",
    "provigil": "Modafinil",
    "strattera": "Atomoxetin",
    "wellbutrin": "Bupropion",
    "prozac": "Fluoxetin",
    "zoloft": "Sertralin",
    "lexapro": "Citalopram",
    "effexor": "Venlafaxin",
    "cymbalta": "Duloxetin",
    "remeron": "Mirtazapin",
    "seroquel": "Quetiapin",
    "zyprexa": "Olanzapin",
    "risperdal": "Risperidon",
    "abilify": "Aripiprazol",
    "haldol": "Haloperidol",
    "caffeine": "Koffein",
    "nicotine": "Nikotin",
    "alcohol": "Alkohol (Ethanol)",
    "ethanol": "Alkohol (Ethanol)",
    "ghb": "GHB",
    "gbl": "GBL",
    "nitrous oxide": "Lachgas (N2O)",
    "laughing gas": "Lachgas (N2O)",
    "dxm": "Dextromethorphan (DXM)",
    "kratom": "Kratom (Mitragynin)",
    "mitragynine": "Kratom (Mitragynin)",
    "thc": "THC",
    "cbd": "CBD",
    "cannabis": "THC",
    "marijuana": "THC",
    "weed": "THC",
    "pcp": "PCP",
    "angel dust": "PCP",
    "naloxone": "Naloxon",
    "narcan": "Naloxon",
    "naltrexone": "Naltrexon",
    "st. john's wort": "Johanniskraut",
    "saint john's wort": "Johanniskraut",
}

_TRANSLITERATIONS = [
    ("ä", "ae"), ("ö", "oe"), ("ü", "ue"), ("ß", "ss"),
    ("α", "alpha"), ("β", "beta"), ("γ", "gamma"),
]

_PARENTHETICAL = re.compile(r"\s*\(.*?\)\s*")
_WHITESPACE = re.compile(r"\s+")
_NON_SLUG = re.compile(r"[^a-z0-9]+")

# Typographic quotes, dashes and the soft hyphen, by code point
_PUNCTUATION = str.maketrans({
    0x2018: "'", 0x2019: "'", 0x0060: "'",
    0x201C: '"', 0x201D: '"',
    0x00AD: None,
    0x2010: "-", 0x2011: "-", 0x2012: "-", 0x2013: "-", 0x2014: "-", 0x2015: "-",
})


def normalize_name(raw: str) -> str:
    """Trim, collapse whitespace and fold typographic punctuation to ASCII."""
    if not raw:
        return ""
    return _WHITESPACE.sub(" ", raw.strip()).translate(_PUNCTUATION)


def slugify(name: str) -> str:
    """
    Build a URL-safe slug from a display name.

    Parenthetical qualifiers are dropped, German umlauts and a few Greek
    letters are spelled out, remaining accents are stripped.
    """
    slug = _PARENTHETICAL.sub(" ", normalize_name(name)).lower()
    for source, target in _TRANSLITERATIONS:
        slug = slug.replace(source, target)
    slug = unicodedata.normalize("NFKD", slug)
    slug = "".join(ch for ch in slug if not unicodedata.combining(ch))
    return _NON_SLUG.sub("-", slug).strip("-")


def resolve_synonym(name: str) -> str:
    """Map a known alternate name to its canonical form; otherwise return the cleaned name."""
    cleaned = normalize_name(name)
    return SYNONYM_MAP.get(cleaned.lower(), cleaned)


def deduplicate(names: List[str]) -> List[DeduplicatedEntry]:
    """
    Collapse a batch of names to one entry per slug.

    Order is preserved and the first occurrence wins. The slug comes from
    the synonym-resolved form, the original name keeps its casing.
    """
    seen = set()
    entries = []

    for raw in names:
        if not raw or not raw.strip():
            continue

        canonical = resolve_synonym(raw)
        slug = slugify(canonical)
        if not slug or slug in seen:
            continue

        seen.add(slug)
        entries.append(
            DeduplicatedEntry(
                canonical_name=canonical,
                slug=slug,
                original_name=raw.strip()
            )
        )

    return entries


def parse_delimited(text: str) -> List[DelimitedEntry]:
    """
    Parse pasted CSV/TSV content into name rows.

    Columns: name, synonyms (``;``-separated, optional), notes (optional).
    Tab is the separator when the first line contains one. A first line
    mentioning "name" or "substanz" is treated as a header.
    """
    lines = [line for line in (text or "").splitlines() if line.strip()]
    if not lines:
        return []

    first_line = lines[0]
    separator = "\t" if "\t" in first_line else ","
    header = first_line.lower()
    if "name" in header or "substanz" in header:
        lines = lines[1:]
    if not lines:
        return []

    df = pd.read_csv(
        io.StringIO("\n".join(lines)),
        sep=separator,
        header=None,
        names=["name", "synonyms", "notes"],
        dtype=str,
        keep_default_na=False,
        engine="python",
        index_col=False,
        skipinitialspace=True,
        # Quotes are stripped per field below; a stray quote must not swallow later rows
        quoting=csv.QUOTE_NONE,
        on_bad_lines=lambda fields: fields[:3]
    ).fillna("")

    entries = []
    for row in df.itertuples(index=False):
        name = _strip_quotes(row.name)
        if not name:
            continue

        synonyms = [s.strip() for s in _strip_quotes(row.synonyms).split(";") if s.strip()]
        entries.append(
            DelimitedEntry(name=name, synonyms=synonyms, notes=_strip_quotes(row.notes))
        )

    logger.debug(f"Parsed {len(entries)} delimited rows (separator={separator!r})")
    return entries


def _strip_quotes(value) -> str:
    return str(value).strip().strip("\"'").strip()
