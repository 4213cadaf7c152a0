from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol, Union

from .errors import ClassificationError


@dataclass(frozen=True)
class Unrecognized:
    """A vocabulary value the classifier returned that we do not know."""

    value: str


class HazardCategory(str, Enum):
    POWDER = "powder"
    LOOSE_SNOW = "loose-snow"
    SLAB = "slab"
    NONE = "none"


class SnowDensity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class StartingWidth(str, Enum):
    POINT = "point"
    WIDE = "wide"
    UNDEFINED = "undefined"


class Propagation(str, Enum):
    FAN = "fan"
    LINEAR = "linear"
    CHAOTIC = "chaotic"
    NONE = "none"


class DebrisPattern(str, Enum):
    FAN_SHAPED = "fan-shaped"
    LINEAR = "linear"
    SCATTERED = "scattered"
    NONE = "none"


class SurfaceRoughness(str, Enum):
    SMOOTH = "smooth"
    ROUGH = "rough"
    VARIABLE = "variable"


class FractureDepth(str, Enum):
    SHALLOW = "shallow"
    DEEP = "deep"
    VARIABLE = "variable"


# Categories that carry a score; NONE is only ever a reported verdict.
SCORED_CATEGORIES: tuple[HazardCategory, ...] = (
    HazardCategory.POWDER,
    HazardCategory.LOOSE_SNOW,
    HazardCategory.SLAB,
)


@dataclass(frozen=True)
class SnowTexture:
    granular: bool
    blocky: bool
    fluffy: bool
    density: SnowDensity | Unrecognized


@dataclass(frozen=True)
class MovementPattern:
    starting_width: StartingWidth | Unrecognized
    propagation: Propagation | Unrecognized
    vertical_movement: bool
    lateral_spread: bool


@dataclass(frozen=True)
class TerrainProfile:
    slope_angle: str | None
    surface_roughness: SurfaceRoughness | Unrecognized
    anchoring_points: bool
    convex_rollover: bool

    @property
    def is_steep(self) -> bool:
        return self.slope_angle is not None and self.slope_angle.startswith("steep")


@dataclass(frozen=True)
class VisualCharacteristics:
    powder_cloud: bool
    fracture_line: bool
    fracture_depth: FractureDepth | Unrecognized | None
    point_release: bool
    debris_pattern: DebrisPattern | Unrecognized
    snow_texture: SnowTexture
    movement_pattern: MovementPattern
    terrain: TerrainProfile


@dataclass(frozen=True)
class ClassificationResult:
    present: bool
    category: HazardCategory | Unrecognized
    confidence: float
    observations: tuple[str, ...]
    characteristics: VisualCharacteristics


@dataclass(frozen=True)
class ScoreVector:
    powder: int = 0
    loose_snow: int = 0
    slab: int = 0

    def as_dict(self) -> dict[HazardCategory, int]:
        return {
            HazardCategory.POWDER: self.powder,
            HazardCategory.LOOSE_SNOW: self.loose_snow,
            HazardCategory.SLAB: self.slab,
        }

    def ranked(self) -> list[tuple[HazardCategory, int]]:
        """Categories ordered by score, highest first; ties keep table order."""
        return sorted(self.as_dict().items(), key=lambda item: item[1], reverse=True)


@dataclass(frozen=True)
class Accepted:
    result: ClassificationResult


@dataclass(frozen=True)
class Rejected:
    error: ClassificationError


RequestOutcome = Union[Accepted, Rejected]


class Analyzer(Protocol):
    def analyze(self, image_bytes: bytes) -> RequestOutcome: ...


__all__ = [
    "Accepted",
    "Analyzer",
    "ClassificationResult",
    "DebrisPattern",
    "FractureDepth",
    "HazardCategory",
    "MovementPattern",
    "Propagation",
    "Rejected",
    "RequestOutcome",
    "SCORED_CATEGORIES",
    "ScoreVector",
    "SnowDensity",
    "SnowTexture",
    "StartingWidth",
    "SurfaceRoughness",
    "TerrainProfile",
    "Unrecognized",
    "VisualCharacteristics",
]
