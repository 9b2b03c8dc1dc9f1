from __future__ import annotations

import base64

import pytest

from amigurumi import config
from amigurumi.images import decode_data_url, extension_for, image_part, split_data_url, to_data_url
from amigurumi.state import Concept, GenerationInputs, GenerationMode, GenerationRun

from conftest import PNG_B64, PNG_DATA_URL, make_concepts, make_record


def test_concept_from_camel_and_snake_records():
    camel = Concept.from_record(make_record(1))
    snake = Concept.from_record({"name": "Fox", "color_scheme": "blue", "hook": None})
    assert camel.color_scheme == "pink, cream, brown"
    assert snake.color_scheme == "blue"
    assert snake.description == ""
    assert snake.hook == ""
    assert camel.id != Concept.from_record(make_record(1)).id


def test_concept_update_is_copy():
    c = make_concepts(1)[0]
    updated = c.with_update(image_url=PNG_DATA_URL)
    assert c.image_url is None
    assert updated.image_url == PNG_DATA_URL
    assert updated.id == c.id


def test_inputs_build_normalizes():
    inputs = GenerationInputs.build([PNG_DATA_URL], "4", "  Kawaii ", "specific", " Fox ")
    assert inputs.mode is GenerationMode.SPECIFIC
    assert inputs.color_count == 4
    assert inputs.style == "Kawaii"
    assert inputs.character == "Fox"


@pytest.mark.parametrize(
    "args, message",
    [
        (([], 3, "Kawaii"), "reference image"),
        (([PNG_DATA_URL], 0, "Kawaii"), "Color count"),
        (([PNG_DATA_URL], 3, "Kawaii", "specific", ""), "target character"),
        (([PNG_DATA_URL], 3, "Kawaii", "random"), "Unknown generation mode"),
    ],
)
def test_inputs_validation(args, message):
    with pytest.raises(ValueError, match=message):
        GenerationInputs.build(*args)


@pytest.mark.parametrize("value", [2.7, None, "", "three", "1.5", float("nan")])
def test_color_count_must_be_whole(value):
    with pytest.raises(ValueError, match="Color count must be a whole number"):
        GenerationInputs.build([PNG_DATA_URL], value, "Kawaii")


@pytest.mark.parametrize("value, expected", [(3.0, 3), ("5", 5), (2, 2)])
def test_color_count_accepts_integral_values(value, expected):
    assert GenerationInputs.build([PNG_DATA_URL], value, "Kawaii").color_count == expected


def test_diverse_mode_ignores_character():
    inputs = GenerationInputs.build([PNG_DATA_URL], 3, "Kawaii", "diverse", "")
    assert inputs.character == ""


def test_replace_concept_with_unknown_id_is_noop():
    run = GenerationRun(concepts=tuple(make_concepts(2)))
    assert run.replace_concept("missing", image_url=PNG_DATA_URL) is run


def test_replace_concept_leaves_siblings():
    run = GenerationRun(concepts=tuple(make_concepts(3)))
    target = run.concepts[1]
    updated = run.replace_concept(target.id, is_generating_image=True)
    assert updated.concepts[1].is_generating_image
    assert updated.concepts[0] is run.concepts[0]
    assert updated.concepts[2] is run.concepts[2]
    assert not run.concepts[1].is_generating_image


def test_data_url_helpers():
    raw, mime = decode_data_url(PNG_DATA_URL)
    assert mime == "image/png"
    assert raw.startswith(b"\x89PNG")
    assert to_data_url(raw, mime) == PNG_DATA_URL
    assert split_data_url("AAAA") == ("image/jpeg", "AAAA")
    assert extension_for("image/jpeg") == "jpeg"
    assert extension_for("") == "png"
    assert image_part("data:image/webp;base64," + base64.b64encode(b"abc").decode()) == {
        "mime_type": "image/webp",
        "data": b"abc",
    }


def test_decode_data_url_ignores_line_breaks():
    payload = "\n".join(PNG_B64[i : i + 16] for i in range(0, len(PNG_B64), 16))
    raw, mime = decode_data_url(f"data:image/png;base64,{payload}\r\n")
    assert mime == "image/png"
    assert raw == base64.b64decode(PNG_B64)


def test_load_settings_requires_key(monkeypatch, tmp_path):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.setattr(config.Path, "home", lambda: tmp_path)
    with pytest.raises(RuntimeError, match="GEMINI_API_KEY"):
        config.load_settings()


def test_load_settings_reads_key_file(monkeypatch, tmp_path):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.setattr(config.Path, "home", lambda: tmp_path)
    key_file = tmp_path / ".config" / "gemini" / "api_key"
    key_file.parent.mkdir(parents=True)
    key_file.write_text("file-key\n")
    settings = config.load_settings(retries=5)
    assert settings.api_key == "file-key"
    assert settings.retries == 5
    assert settings.image_model == config.DEFAULT_IMAGE_MODEL
