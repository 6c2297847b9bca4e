"""
Confidence scoring for enriched items.

A pure function of stage statuses and data-completeness flags. Curators use
the 0-100 score to triage weak records without re-reading stage details.
"""

# Source stage (max 30)
SOURCE_VALIDATED_POINTS = 20
DESCRIPTION_POINTS = 10

# Chemical stage (max 30)
CHEMICAL_OK_POINTS = 15
SYNONYMS_POINTS = 10
FORMULA_POINTS = 5

# Generative stage (max 40)
GENERATIVE_OK_POINTS = 40
GENERATIVE_PARTIAL_POINTS = 15


def compute_confidence_score(
    source_validated: bool,
    has_description: bool,
    chemical_status: str,
    has_synonyms: bool = False,
    has_formula: bool = False,
    generative_status: str = "skipped",
    has_generative_data: bool = False
) -> int:
    """
    Compute the confidence score for one item.

    Synonym and formula points only count when the chemical lookup succeeded.
    A failed generative stage still earns partial points when it returned
    (filtered) data.

    Returns:
        Integer in [0, 100]
    """
    score = 0

    if source_validated:
        score += SOURCE_VALIDATED_POINTS
    if has_description:
        score += DESCRIPTION_POINTS

    if chemical_status == "ok":
        score += CHEMICAL_OK_POINTS
        if has_synonyms:
            score += SYNONYMS_POINTS
        if has_formula:
            score += FORMULA_POINTS

    if generative_status == "ok" and has_generative_data:
        score += GENERATIVE_OK_POINTS
    elif generative_status == "failed" and has_generative_data:
        score += GENERATIVE_PARTIAL_POINTS

    return max(0, min(100, score))
