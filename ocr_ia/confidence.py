"""
Confidence Policy

Every score the pipeline produces is combined here, so that each stage uses
the same documented weights and every result stays in [0, 1].

Weights:
- Lines: mean of angle closeness and length (saturates at 200 px)
- Borders: detected / expected border lines
- Tables: density 30%, intersection confidence 40%, regularity 30%;
  selection score = 0.6 x confidence + 0.4 x normalized area
- Relationships: base 0.7, +0.1 well-formed number, +0.1 primary text
  type, relation-type bonus
- Mapping strategies: each strategy scales the evidence confidence
- Validation: x0.5 per error, x0.8 per warning, x0.95 per info, floor 0.1
- Quality score: validity 40%, completeness 30%, conformity 30% minus
  capped penalties
"""

from __future__ import annotations

from typing import Dict, Iterable


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Bound a value to [low, high]."""
    return max(low, min(high, value))


# -- geometry -----------------------------------------------------------------

LINE_LENGTH_SATURATION = 200.0
LINE_ANGLE_EXACT = 5.0


def line_confidence(axis_deviation: float, length: float) -> float:
    """
    Confidence of a line segment.

    Args:
        axis_deviation: Angle in degrees between the segment and its axis
        length: Segment length in pixels
    """
    deviation = abs(axis_deviation)
    if deviation < LINE_ANGLE_EXACT:
        angle_score = 1.0
    else:
        angle_score = max(0.0, 1.0 - deviation / 90.0)
    length_score = min(1.0, length / LINE_LENGTH_SATURATION)
    return clamp((angle_score + length_score) / 2)


def border_confidence(detected: int, expected: int) -> float:
    if expected <= 0:
        return 1.0
    return clamp(detected / expected)


DEGRADED_BORDER_CONFIDENCE = 0.5

TABLE_WEIGHTS: Dict[str, float] = {
    'density': 0.3,
    'intersections': 0.4,
    'regularity': 0.3,
}

TABLE_SELECTION_WEIGHTS: Dict[str, float] = {
    'confidence': 0.6,
    'area': 0.4,
}

# Intersections expected per 50x50 px block of a table
TABLE_DENSITY_BLOCK = 50.0


def table_confidence(density: float, intersection_confidence: float, regularity: float) -> float:
    return clamp(
        clamp(density) * TABLE_WEIGHTS['density'] +
        clamp(intersection_confidence) * TABLE_WEIGHTS['intersections'] +
        clamp(regularity) * TABLE_WEIGHTS['regularity']
    )


def table_selection_score(confidence: float, normalized_area: float) -> float:
    return (
        confidence * TABLE_SELECTION_WEIGHTS['confidence'] +
        clamp(normalized_area) * TABLE_SELECTION_WEIGHTS['area']
    )


def mean(values: Iterable[float], default: float = 0.0) -> float:
    values = list(values)
    if not values:
        return default
    return sum(values) / len(values)


# -- relationships ------------------------------------------------------------

RELATIONSHIP_BASE = 0.7
RELATIONSHIP_NUMBER_BONUS = 0.1
RELATIONSHIP_PRIMARY_TYPE_BONUS = 0.1

RELATIONSHIP_TYPE_BONUS: Dict[str, float] = {
    'vu': 0.05,
    'abrogation': 0.1,
    'modification': 0.08,
}


def relationship_confidence(well_formed_number: bool, primary_type: bool, relation_type: str) -> float:
    score = RELATIONSHIP_BASE
    if well_formed_number:
        score += RELATIONSHIP_NUMBER_BONUS
    if primary_type:
        score += RELATIONSHIP_PRIMARY_TYPE_BONUS
    score += RELATIONSHIP_TYPE_BONUS.get(relation_type, 0.0)
    return clamp(score)


# -- entities -----------------------------------------------------------------

SUB_ENTITY_FACTOR = 0.9
CONTEXT_BONUS = 0.1
FORMAT_BONUS = 0.1
REFERENCE_BONUS = 0.1
REFERENCE_PENALTY = 0.3


def entity_confidence(base: float, context_hits: int = 0, well_formed: bool = False,
                      known_reference=None) -> float:
    """
    Confidence of a recognized entity.

    ``known_reference`` is None when no closed reference list applies,
    otherwise True/False depending on whether the value was recognized.
    """
    score = base + CONTEXT_BONUS * min(context_hits, 2)
    if well_formed:
        score += FORMAT_BONUS
    if known_reference is True:
        score += REFERENCE_BONUS
    elif known_reference is False:
        score -= REFERENCE_PENALTY
    return clamp(score)


# -- mapping ------------------------------------------------------------------

STRATEGY_FACTORS: Dict[str, float] = {
    'content': 0.8,
    'entity': 0.9,
    'pattern': 0.85,
    'procedure': 0.8,
    'learning': 1.0,
}


def strategy_confidence(source: str, evidence_confidence: float) -> float:
    return clamp(evidence_confidence * STRATEGY_FACTORS.get(source, 1.0))


# -- validation ---------------------------------------------------------------

SEVERITY_FACTORS: Dict[str, float] = {
    'error': 0.5,
    'warning': 0.8,
    'info': 0.95,
}

VALIDATION_FLOOR = 0.1


def adjusted_confidence(base: float, severities: Iterable[str]) -> float:
    """Down-weight a field confidence once per violation, floored."""
    score = clamp(base)
    applied = False
    for severity in severities:
        score *= SEVERITY_FACTORS.get(severity, 1.0)
        applied = True
    if applied:
        score = max(VALIDATION_FLOOR, score)
    return score


QUALITY_WEIGHTS: Dict[str, float] = {
    'validity': 0.4,
    'completeness': 0.3,
    'conformity': 0.3,
}
ERROR_PENALTY = 5.0
ERROR_PENALTY_CAP = 30.0
WARNING_PENALTY = 2.0
WARNING_PENALTY_CAP = 20.0


def quality_score(validity: float, completeness: float, conformity: float,
                  errors: int, warnings: int) -> float:
    """Overall data quality on a 0-100 scale."""
    score = (
        validity * QUALITY_WEIGHTS['validity'] +
        completeness * QUALITY_WEIGHTS['completeness'] +
        conformity * QUALITY_WEIGHTS['conformity']
    )
    score -= min(errors * ERROR_PENALTY, ERROR_PENALTY_CAP)
    score -= min(warnings * WARNING_PENALTY, WARNING_PENALTY_CAP)
    return clamp(score, 0.0, 100.0)
