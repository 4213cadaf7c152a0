from __future__ import annotations

import copy
import io
import json
from unittest.mock import Mock, patch

from PIL import Image

from avalanche.ai.parser import parse_analysis
from avalanche.runtime.main import (
    EXIT_ACCEPTED,
    EXIT_REJECTED,
    EXIT_USAGE,
    format_result,
    main,
)


POWDER_WIRE = {
    "avalanche_present": True,
    "avalanche_type": "powder",
    "confidence_level": 84.0,
    "terrain_features": ["Billowing cloud below the cornice"],
    "visual_characteristics": {
        "powder_cloud": True,
        "fracture_line": True,
        "fracture_depth": None,
        "point_release": False,
        "debris_pattern": "scattered",
        "snow_texture": {"granular": False, "blocky": False, "fluffy": True, "density": "low"},
        "movement_pattern": {
            "starting_width": "undefined",
            "propagation": "chaotic",
            "vertical_movement": True,
            "lateral_spread": False,
        },
        "terrain": {
            "slope_angle": "steep (>45°)",
            "surface_roughness": "rough",
            "anchoring_points": False,
            "convex_rollover": True,
        },
    },
}


def _write_image(tmp_path):
    path = tmp_path / "slope.jpg"
    buffer = io.BytesIO()
    Image.new("RGB", (16, 16), color="white").save(buffer, format="JPEG")
    path.write_bytes(buffer.getvalue())
    return path


def _response(content: dict) -> Mock:
    response = Mock()
    response.status_code = 200
    response.text = json.dumps({"choices": [{"message": {"content": json.dumps(content)}}]})
    response.raise_for_status.return_value = None
    return response


def test_format_result_summarises_sections() -> None:
    text = format_result(parse_analysis(POWDER_WIRE))

    assert text.splitlines()[0] == "Powder Avalanche"
    assert "Confidence: 84% (high)" in text
    assert "Texture: fluffy" in text
    assert "Propagation: chaotic" in text
    assert "Slope: steep (>45°)" in text
    assert "  - Billowing cloud below the cornice" in text


def test_cli_prints_accepted_result(tmp_path, capsys) -> None:
    image = _write_image(tmp_path)

    with patch("avalanche.ai.openai_client.requests.post", return_value=_response(POWDER_WIRE)):
        code = main(
            [str(image), "--api-key", "sk-test", "--config", str(tmp_path / "none.json"),
             "--poll-interval", "0.01"]
        )

    assert code == EXIT_ACCEPTED
    assert "Powder Avalanche" in capsys.readouterr().out


def test_cli_reports_rejection(tmp_path, capsys) -> None:
    image = _write_image(tmp_path)
    mismatched = copy.deepcopy(POWDER_WIRE)
    mismatched["avalanche_type"] = "slab"

    with patch("avalanche.ai.openai_client.requests.post", return_value=_response(mismatched)):
        code = main(
            [str(image), "--api-key", "sk-test", "--config", str(tmp_path / "none.json"),
             "--poll-interval", "0.01", "--json"]
        )

    assert code == EXIT_REJECTED
    document = json.loads(capsys.readouterr().out)
    assert document["state"] == "resolved"
    assert document["outcome"] == "rejected"
    assert document["error"]["kind"] == "inconsistent_classification"
    assert document["error"]["details"]["expected"] == "powder"


def test_cli_requires_api_key(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    image = _write_image(tmp_path)

    with patch("avalanche.runtime.main.load_dotenv"):
        code = main([str(image), "--config", str(tmp_path / "none.json")])

    assert code == EXIT_USAGE


def test_cli_rejects_non_image(tmp_path) -> None:
    path = tmp_path / "notes.jpg"
    path.write_text("hello", encoding="utf-8")

    with patch("avalanche.ai.openai_client.requests.post") as post:
        code = main([str(path), "--api-key", "sk-test", "--config", str(tmp_path / "none.json")])

    assert code == EXIT_USAGE
    post.assert_not_called()
