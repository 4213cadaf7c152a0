from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path

from dotenv import load_dotenv

from ..ai.types import (
    Accepted,
    ClassificationResult,
    HazardCategory,
    Unrecognized,
)
from ..api.config_loader import DEFAULT_CONFIG_PATH, build_analyzer_factory, load_config
from ..api.schemas import status_response
from ..imaging import ImageLoadError, load_image_bytes
from .lifecycle import AnalysisLifecycle, Resolved

logger = logging.getLogger(__name__)

EXIT_ACCEPTED = 0
EXIT_REJECTED = 1
EXIT_USAGE = 2

DISPLAY_LABELS = {
    HazardCategory.POWDER: "Powder Avalanche",
    HazardCategory.LOOSE_SNOW: "Loose Snow Avalanche",
    HazardCategory.SLAB: "Slab Avalanche",
    HazardCategory.NONE: "No Avalanche Risk",
}


def display_label(category: HazardCategory | Unrecognized) -> str:
    if isinstance(category, Unrecognized):
        return "Unknown Type"
    return DISPLAY_LABELS[category]


def confidence_band(confidence: float) -> str:
    if confidence > 80.0:
        return "high"
    if confidence > 50.0:
        return "moderate"
    return "low"


def format_result(result: ClassificationResult) -> str:
    chars = result.characteristics
    snow = chars.snow_texture
    movement = chars.movement_pattern
    terrain = chars.terrain

    textures = [
        name
        for name, flag in (
            ("granular", snow.granular),
            ("blocky", snow.blocky),
            ("fluffy", snow.fluffy),
        )
        if flag
    ]
    motion = [
        name
        for name, flag in (
            ("vertical", movement.vertical_movement),
            ("lateral", movement.lateral_spread),
        )
        if flag
    ]
    terrain_flags = [
        name
        for name, flag in (
            ("anchoring points", terrain.anchoring_points),
            ("convex rollover", terrain.convex_rollover),
        )
        if flag
    ]

    lines = [
        display_label(result.category),
        f"Confidence: {result.confidence:.0f}% ({confidence_band(result.confidence)})",
        "",
        "Snow analysis",
        f"  Texture: {', '.join(textures) or 'none noted'}",
        f"  Density: {snow.density.value}",
        "Movement pattern",
        f"  Initial release: {movement.starting_width.value}",
        f"  Propagation: {movement.propagation.value}",
        f"  Motion: {', '.join(motion) or 'none noted'}",
        "Terrain analysis",
    ]
    if terrain.slope_angle is not None:
        lines.append(f"  Slope: {terrain.slope_angle}")
    lines.append(f"  Surface: {terrain.surface_roughness.value}")
    if terrain_flags:
        lines.append(f"  Features: {', '.join(terrain_flags)}")
    if result.observations:
        lines.append("Additional observations")
        lines.extend(f"  - {item}" for item in result.observations)
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Classify avalanche terrain in a photograph"
    )
    parser.add_argument("image", type=Path, help="Path to a PNG, JPEG or WebP image")
    parser.add_argument(
        "--api-key",
        default=None,
        help="OpenAI API key (default: from the configured environment variable)",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=str(DEFAULT_CONFIG_PATH),
        help=f"Path to JSON configuration file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=0.5,
        help="Seconds between status polls (default: 0.5)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the status document as JSON instead of a summary",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def run(args: argparse.Namespace, lifecycle: AnalysisLifecycle, api_key: str) -> int:
    try:
        image_bytes = load_image_bytes(args.image)
    except ImageLoadError as exc:
        print(f"[analyzer] {exc}", file=sys.stderr)
        return EXIT_USAGE

    lifecycle.submit(api_key, image_bytes)
    status = lifecycle.poll()
    announced = False
    while not isinstance(status, Resolved):
        if not announced:
            logger.info("Analyzing terrain features...")
            announced = True
        time.sleep(max(0.05, args.poll_interval))
        status = lifecycle.poll()

    if args.json:
        print(json.dumps(status_response(status).model_dump(), indent=2))
    elif isinstance(status.outcome, Accepted):
        print(format_result(status.outcome.result))
    else:
        print(f"Analysis rejected: {status.outcome.error}", file=sys.stderr)

    return EXIT_ACCEPTED if isinstance(status.outcome, Accepted) else EXIT_REJECTED


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=logging.DEBUG if args.verbose else logging.INFO,
            format="%(levelname)s [%(name)s] %(message)s",
        )

    config_path = Path(args.config)
    try:
        cfg = load_config(config_path if config_path.exists() else None)
    except (OSError, ValueError) as exc:
        logger.error("Failed to load configuration: %s", exc)
        return EXIT_USAGE

    api_key = (args.api_key or "").strip() or cfg.openai.resolve_api_key()
    if not api_key:
        logger.error(
            "Pass --api-key or set %s to analyze images", cfg.openai.api_key_env
        )
        return EXIT_USAGE

    with AnalysisLifecycle(analyzer_factory=build_analyzer_factory(cfg)) as lifecycle:
        return run(args, lifecycle, api_key)


if __name__ == "__main__":
    sys.exit(main())
