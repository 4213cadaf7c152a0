"""Rule-based corroboration of the model's avalanche classification.

The category the model reports is advisory. It is only accepted when the
structured characteristics it reported alongside it point clearly at the same
category: the best-scoring category must lead the runner-up by
``MIN_MARGIN`` points and reach ``MIN_SCORE`` points on its own. A single
primary indicator (worth ``PRIMARY_WEIGHT``) can therefore never carry a
classification by itself.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from .errors import (
    AmbiguousEvidenceError,
    ConfidenceOutOfRangeError,
    InconsistentClassificationError,
    InsufficientEvidenceError,
    InvalidCategoryError,
)
from .types import (
    ClassificationResult,
    DebrisPattern,
    HazardCategory,
    Propagation,
    ScoreVector,
    SnowDensity,
    StartingWidth,
    Unrecognized,
    VisualCharacteristics,
)

logger = logging.getLogger(__name__)

PRIMARY_WEIGHT = 3
SECONDARY_WEIGHT = 1
MIN_MARGIN = 3
MIN_SCORE = 6
MIN_CONFIDENCE = 0.0
MAX_CONFIDENCE = 100.0


@dataclass(frozen=True)
class IndicatorRule:
    category: HazardCategory
    weight: int
    label: str
    test: Callable[[VisualCharacteristics], bool]


_POWDER = HazardCategory.POWDER
_LOOSE = HazardCategory.LOOSE_SNOW
_SLAB = HazardCategory.SLAB

# Enum members compare by identity with what the parser produced, so an
# Unrecognized value never satisfies a rule.
INDICATOR_RULES: tuple[IndicatorRule, ...] = (
    IndicatorRule(_POWDER, PRIMARY_WEIGHT, "powder cloud", lambda c: c.powder_cloud),
    IndicatorRule(_POWDER, PRIMARY_WEIGHT, "fluffy texture", lambda c: c.snow_texture.fluffy),
    IndicatorRule(
        _POWDER,
        PRIMARY_WEIGHT,
        "vertical movement",
        lambda c: c.movement_pattern.vertical_movement,
    ),
    IndicatorRule(
        _POWDER,
        SECONDARY_WEIGHT,
        "low density",
        lambda c: c.snow_texture.density is SnowDensity.LOW,
    ),
    IndicatorRule(
        _POWDER,
        SECONDARY_WEIGHT,
        "chaotic propagation",
        lambda c: c.movement_pattern.propagation is Propagation.CHAOTIC,
    ),
    IndicatorRule(_POWDER, SECONDARY_WEIGHT, "steep slope", lambda c: c.terrain.is_steep),
    IndicatorRule(
        _LOOSE,
        PRIMARY_WEIGHT,
        "point release width",
        lambda c: c.movement_pattern.starting_width is StartingWidth.POINT,
    ),
    IndicatorRule(
        _LOOSE,
        PRIMARY_WEIGHT,
        "fan propagation",
        lambda c: c.movement_pattern.propagation is Propagation.FAN,
    ),
    IndicatorRule(_LOOSE, PRIMARY_WEIGHT, "granular texture", lambda c: c.snow_texture.granular),
    IndicatorRule(
        _LOOSE,
        PRIMARY_WEIGHT,
        "fan-shaped debris",
        lambda c: c.debris_pattern is DebrisPattern.FAN_SHAPED,
    ),
    IndicatorRule(_LOOSE, SECONDARY_WEIGHT, "no fracture line", lambda c: not c.fracture_line),
    IndicatorRule(
        _LOOSE,
        SECONDARY_WEIGHT,
        "low density",
        lambda c: c.snow_texture.density is SnowDensity.LOW,
    ),
    IndicatorRule(_LOOSE, SECONDARY_WEIGHT, "steep slope", lambda c: c.terrain.is_steep),
    IndicatorRule(_SLAB, PRIMARY_WEIGHT, "fracture line", lambda c: c.fracture_line),
    IndicatorRule(_SLAB, PRIMARY_WEIGHT, "blocky texture", lambda c: c.snow_texture.blocky),
    IndicatorRule(
        _SLAB,
        PRIMARY_WEIGHT,
        "wide release width",
        lambda c: c.movement_pattern.starting_width is StartingWidth.WIDE,
    ),
    IndicatorRule(
        _SLAB,
        PRIMARY_WEIGHT,
        "linear propagation",
        lambda c: c.movement_pattern.propagation is Propagation.LINEAR,
    ),
    IndicatorRule(
        _SLAB,
        SECONDARY_WEIGHT,
        "high density",
        lambda c: c.snow_texture.density is SnowDensity.HIGH,
    ),
    IndicatorRule(
        _SLAB,
        SECONDARY_WEIGHT,
        "linear debris",
        lambda c: c.debris_pattern is DebrisPattern.LINEAR,
    ),
    IndicatorRule(
        _SLAB,
        SECONDARY_WEIGHT,
        "lateral spread",
        lambda c: c.movement_pattern.lateral_spread,
    ),
)


def matched_indicators(
    characteristics: VisualCharacteristics,
) -> dict[HazardCategory, list[str]]:
    matches: dict[HazardCategory, list[str]] = {_POWDER: [], _LOOSE: [], _SLAB: []}
    for rule in INDICATOR_RULES:
        if rule.test(characteristics):
            matches[rule.category].append(rule.label)
    return matches


def score_characteristics(characteristics: VisualCharacteristics) -> ScoreVector:
    totals = {_POWDER: 0, _LOOSE: 0, _SLAB: 0}
    for rule in INDICATOR_RULES:
        if rule.test(characteristics):
            totals[rule.category] += rule.weight
    return ScoreVector(
        powder=totals[_POWDER],
        loose_snow=totals[_LOOSE],
        slab=totals[_SLAB],
    )


@dataclass(frozen=True)
class ConsistencyValidator:
    """Accept a classification only when its own evidence backs it up."""

    min_margin: int = MIN_MARGIN
    min_score: int = MIN_SCORE

    def validate(self, result: ClassificationResult) -> ClassificationResult:
        if not MIN_CONFIDENCE <= result.confidence <= MAX_CONFIDENCE:
            raise ConfidenceOutOfRangeError(result.confidence)

        if result.present:
            self._corroborate(result)

        # A present hazard with an unrecognized category already failed above.
        if isinstance(result.category, Unrecognized):
            raise InvalidCategoryError(result.category.value)
        return result

    def _corroborate(self, result: ClassificationResult) -> None:
        scores = score_characteristics(result.characteristics)
        ranked = scores.ranked()
        expected, highest = ranked[0]
        second = ranked[1][1]
        logger.debug(
            "Evidence scores powder=%d loose_snow=%d slab=%d expected=%s",
            scores.powder,
            scores.loose_snow,
            scores.slab,
            expected.value,
        )

        if highest - second < self.min_margin:
            raise AmbiguousEvidenceError(scores)
        if highest < self.min_score:
            raise InsufficientEvidenceError(scores)
        if result.category is not expected:
            raise InconsistentClassificationError(expected, result.category, highest)


__all__ = [
    "ConsistencyValidator",
    "INDICATOR_RULES",
    "IndicatorRule",
    "MIN_MARGIN",
    "MIN_SCORE",
    "PRIMARY_WEIGHT",
    "SECONDARY_WEIGHT",
    "matched_indicators",
    "score_characteristics",
]
