from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any, Mapping, TypeVar

from .errors import MalformedPayloadError, MissingFieldError
from .types import (
    ClassificationResult,
    DebrisPattern,
    FractureDepth,
    HazardCategory,
    MovementPattern,
    Propagation,
    SnowDensity,
    SnowTexture,
    StartingWidth,
    SurfaceRoughness,
    TerrainProfile,
    Unrecognized,
    VisualCharacteristics,
)

logger = logging.getLogger(__name__)

_E = TypeVar("_E", bound=Enum)


def parse_completion(body: str) -> ClassificationResult:
    """Decode a chat-completions response body into a classification."""
    envelope = _decode_object(body, "Classifier response body")

    choices = _required(envelope, "choices", "")
    if not isinstance(choices, list):
        raise MalformedPayloadError("Field 'choices' must be a list")
    if not choices:
        raise MissingFieldError("choices[0]")
    choice = choices[0]
    if not isinstance(choice, Mapping):
        raise MalformedPayloadError("Field 'choices[0]' must be an object")
    message = _object(choice, "message", "choices[0]")
    content = _required(message, "content", "choices[0].message")
    if not isinstance(content, str):
        raise MalformedPayloadError("Field 'choices[0].message.content' must be a string")
    return parse_analysis(content)


def parse_analysis(payload: str | Mapping[str, Any]) -> ClassificationResult:
    """Decode the analysis object the model produced.

    Extra fields are ignored. Vocabulary fields keep values we do not know as
    :class:`Unrecognized` so that callers can decide what to do with them.
    """
    if isinstance(payload, Mapping):
        data = payload
    else:
        data = _decode_object(payload, "Classifier analysis")

    present = _bool(data, "avalanche_present", "")
    raw_category = _string(data, "avalanche_type", "")
    confidence = _number(data, "confidence_level", "")

    observations_value = data.get("terrain_features")
    if observations_value is None:
        observations: tuple[str, ...] = ()
    elif isinstance(observations_value, list) and all(
        isinstance(item, str) for item in observations_value
    ):
        observations = tuple(observations_value)
    else:
        raise MalformedPayloadError("Field 'terrain_features' must be a list of strings")

    characteristics = _parse_characteristics(
        _object(data, "visual_characteristics", "")
    )

    result = ClassificationResult(
        present=present,
        category=_choice(HazardCategory, raw_category),
        confidence=confidence,
        observations=observations,
        characteristics=characteristics,
    )
    logger.debug(
        "Parsed analysis present=%s category=%s confidence=%.1f",
        result.present,
        result.category.value,
        result.confidence,
    )
    return result


def encode_analysis(result: ClassificationResult) -> dict[str, Any]:
    """Render a classification in the wire schema the model is asked for."""
    chars = result.characteristics
    snow = chars.snow_texture
    movement = chars.movement_pattern
    terrain = chars.terrain
    return {
        "avalanche_present": result.present,
        "avalanche_type": result.category.value,
        "confidence_level": result.confidence,
        "terrain_features": list(result.observations),
        "visual_characteristics": {
            "powder_cloud": chars.powder_cloud,
            "fracture_line": chars.fracture_line,
            "fracture_depth": (
                chars.fracture_depth.value if chars.fracture_depth is not None else None
            ),
            "point_release": chars.point_release,
            "debris_pattern": chars.debris_pattern.value,
            "snow_texture": {
                "granular": snow.granular,
                "blocky": snow.blocky,
                "fluffy": snow.fluffy,
                "density": snow.density.value,
            },
            "movement_pattern": {
                "starting_width": movement.starting_width.value,
                "propagation": movement.propagation.value,
                "vertical_movement": movement.vertical_movement,
                "lateral_spread": movement.lateral_spread,
            },
            "terrain": {
                "slope_angle": terrain.slope_angle,
                "surface_roughness": terrain.surface_roughness.value,
                "anchoring_points": terrain.anchoring_points,
                "convex_rollover": terrain.convex_rollover,
            },
        },
    }


def _parse_characteristics(data: Mapping[str, Any]) -> VisualCharacteristics:
    path = "visual_characteristics"
    snow_data = _object(data, "snow_texture", path)
    movement_data = _object(data, "movement_pattern", path)
    terrain_data = _object(data, "terrain", path)

    snow_path = f"{path}.snow_texture"
    movement_path = f"{path}.movement_pattern"
    terrain_path = f"{path}.terrain"

    fracture_depth = _optional_string(data, "fracture_depth", path)
    return VisualCharacteristics(
        powder_cloud=_bool(data, "powder_cloud", path),
        fracture_line=_bool(data, "fracture_line", path),
        fracture_depth=(
            _choice(FractureDepth, fracture_depth) if fracture_depth is not None else None
        ),
        point_release=_bool(data, "point_release", path),
        debris_pattern=_choice(DebrisPattern, _string(data, "debris_pattern", path)),
        snow_texture=SnowTexture(
            granular=_bool(snow_data, "granular", snow_path),
            blocky=_bool(snow_data, "blocky", snow_path),
            fluffy=_bool(snow_data, "fluffy", snow_path),
            density=_choice(SnowDensity, _string(snow_data, "density", snow_path)),
        ),
        movement_pattern=MovementPattern(
            starting_width=_choice(
                StartingWidth, _string(movement_data, "starting_width", movement_path)
            ),
            propagation=_choice(
                Propagation, _string(movement_data, "propagation", movement_path)
            ),
            vertical_movement=_bool(movement_data, "vertical_movement", movement_path),
            lateral_spread=_bool(movement_data, "lateral_spread", movement_path),
        ),
        terrain=TerrainProfile(
            slope_angle=_optional_string(terrain_data, "slope_angle", terrain_path),
            surface_roughness=_choice(
                SurfaceRoughness,
                _string(terrain_data, "surface_roughness", terrain_path),
            ),
            anchoring_points=_bool(terrain_data, "anchoring_points", terrain_path),
            convex_rollover=_bool(terrain_data, "convex_rollover", terrain_path),
        ),
    )


def _decode_object(text: str, label: str) -> Mapping[str, Any]:
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise MalformedPayloadError(f"{label} was not valid JSON: {exc}") from exc
    if not isinstance(data, Mapping):
        raise MalformedPayloadError(f"{label} must be a JSON object")
    return data


def _path(parent: str, name: str) -> str:
    return f"{parent}.{name}" if parent else name


def _required(data: Mapping[str, Any], name: str, parent: str) -> Any:
    # An explicit null counts as absent for required fields.
    value = data.get(name)
    if value is None:
        raise MissingFieldError(_path(parent, name))
    return value


def _object(data: Mapping[str, Any], name: str, parent: str) -> Mapping[str, Any]:
    value = _required(data, name, parent)
    if not isinstance(value, Mapping):
        raise MalformedPayloadError(f"Field '{_path(parent, name)}' must be an object")
    return value


def _bool(data: Mapping[str, Any], name: str, parent: str) -> bool:
    value = _required(data, name, parent)
    if not isinstance(value, bool):
        raise MalformedPayloadError(f"Field '{_path(parent, name)}' must be a boolean")
    return value


def _number(data: Mapping[str, Any], name: str, parent: str) -> float:
    value = _required(data, name, parent)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedPayloadError(f"Field '{_path(parent, name)}' must be a number")
    return float(value)


def _string(data: Mapping[str, Any], name: str, parent: str) -> str:
    value = _required(data, name, parent)
    if not isinstance(value, str):
        raise MalformedPayloadError(f"Field '{_path(parent, name)}' must be a string")
    return value


def _optional_string(data: Mapping[str, Any], name: str, parent: str) -> str | None:
    value = data.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise MalformedPayloadError(
            f"Field '{_path(parent, name)}' must be a string or null"
        )
    return value


def _choice(enum_cls: type[_E], value: str) -> _E | Unrecognized:
    try:
        return enum_cls(value)
    except ValueError:
        return Unrecognized(value)


__all__ = ["encode_analysis", "parse_analysis", "parse_completion"]
