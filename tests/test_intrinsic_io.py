from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest

from camkit.api.intrinsic_io import (
    load_intrinsic,
    load_intrinsics_json,
    parse_intrinsics,
    register_intrinsic,
    registered_intrinsics,
    save_intrinsic,
    save_intrinsics_json,
)
from camkit.core.pinhole import PinholeIntrinsic
from camkit.schema import INTRINSICS_SCHEMA_VERSION, ArchiveError


def test_pinhole_record_layout():
    rec = save_intrinsic(PinholeIntrinsic(1920, 1080, 1500.5, 960.0, 540.0))
    assert rec == {
        "polymorphic_name": "pinhole",
        "data": {"width": 1920, "height": 1080, "focal_length": 1500.5, "principal_point": [960.0, 540.0]},
    }


def test_save_load_roundtrip_keeps_K_and_size():
    cam = PinholeIntrinsic(1920, 1080, 1500.5, 960.0, 540.0)
    rec = json.loads(json.dumps(save_intrinsic(cam)))
    back = load_intrinsic(rec)
    assert isinstance(back, PinholeIntrinsic)
    assert np.array_equal(back.K, cam.K)
    assert np.array_equal(back.Kinv, cam.Kinv)
    assert (back.w, back.h) == (1920, 1080)


@pytest.mark.parametrize(
    "data",
    [
        {"width": 10, "height": 10, "principal_point": [1.0, 2.0]},
        {"width": 10, "height": 10, "focal_length": 5.0},
        {"width": 10, "focal_length": 5.0, "principal_point": [1.0, 2.0]},
        {"width": 10, "height": 10, "focal_length": "abc", "principal_point": [1.0, 2.0]},
        {"width": 10, "height": 10, "focal_length": 5.0, "principal_point": [1.0]},
        {"width": -3, "height": 10, "focal_length": 5.0, "principal_point": [1.0, 2.0]},
        {"width": 10.5, "height": 10, "focal_length": 5.0, "principal_point": [1.0, 2.0]},
    ],
)
def test_load_failure_keeps_prior_state(data):
    cam = PinholeIntrinsic(800, 600, 1000.0, 400.0, 300.0)
    with pytest.raises(ArchiveError):
        cam.load(data)
    assert cam == PinholeIntrinsic(800, 600, 1000.0, 400.0, 300.0)


def test_load_unknown_tag():
    with pytest.raises(ArchiveError):
        load_intrinsic({"polymorphic_name": "fisheye", "data": {}})
    with pytest.raises(ArchiveError):
        load_intrinsic({"data": {}})


def test_registry_rejects_conflicting_tag():
    assert registered_intrinsics()["pinhole"] is PinholeIntrinsic

    class Other(PinholeIntrinsic):
        pass

    with pytest.raises(ValueError):
        register_intrinsic("pinhole")(Other)


def test_json_file_roundtrip(tmp_path: Path):
    shared = PinholeIntrinsic(640, 480, 500.0, 320.0, 240.0)
    path = save_intrinsics_json(tmp_path / "sub" / "intrinsics.json", {3: shared, 1: PinholeIntrinsic(10, 20, 1.0, 2.0, 3.0)})
    loaded = load_intrinsics_json(path)
    assert sorted(loaded) == [1, 3]
    assert loaded[3] == shared
    doc = json.loads(path.read_text(encoding="utf-8"))
    assert doc["schema_version"] == INTRINSICS_SCHEMA_VERSION
    assert [e["key"] for e in doc["intrinsics"]] == [1, 3]


def _doc_with_bad_entry() -> dict:
    good = save_intrinsic(PinholeIntrinsic(640, 480, 500.0, 320.0, 240.0))
    bad = {"polymorphic_name": "pinhole", "data": {"width": 640, "height": 480}}
    return {
        "schema_version": INTRINSICS_SCHEMA_VERSION,
        "intrinsics": [{"key": 0, "value": good}, {"key": 1, "value": bad}],
    }


def test_bad_record_does_not_abort_siblings():
    loaded = parse_intrinsics(_doc_with_bad_entry())
    assert list(loaded) == [0]


def test_bad_record_strict():
    with pytest.raises(ArchiveError, match="entry 1"):
        parse_intrinsics(_doc_with_bad_entry(), strict=True)


def test_rejects_unknown_schema_and_bad_json(tmp_path: Path):
    with pytest.raises(ArchiveError):
        parse_intrinsics({"schema_version": "other", "intrinsics": []})
    p = tmp_path / "broken.json"
    p.write_text("{not json", encoding="utf-8")
    with pytest.raises(ArchiveError):
        load_intrinsics_json(p)


@pytest.mark.parametrize(
    "data",
    [
        {"width": float("inf"), "height": 480, "focal_length": 500.0, "principal_point": [320.0, 240.0]},
        {"width": 640, "height": 480, "focal_length": 10**400, "principal_point": [320.0, 240.0]},
        {"width": 640, "height": 480, "focal_length": 500.0, "principal_point": [10**400, 240.0]},
        {"width": 640, "height": float("nan"), "focal_length": 500.0, "principal_point": [320.0, 240.0]},
    ],
)
def test_out_of_range_record_is_skipped(data):
    good = save_intrinsic(PinholeIntrinsic(640, 480, 500.0, 320.0, 240.0))
    doc = {
        "schema_version": INTRINSICS_SCHEMA_VERSION,
        "intrinsics": [{"key": 0, "value": good}, {"key": 1, "value": {"polymorphic_name": "pinhole", "data": data}}],
    }
    assert list(parse_intrinsics(doc)) == [0]
    with pytest.raises(ArchiveError):
        parse_intrinsics(doc, strict=True)


def test_infinite_width_in_json_file(tmp_path: Path):
    p = tmp_path / "inf.json"
    p.write_text(
        '{"schema_version": "%s", "intrinsics": [{"key": 0, "value": {"polymorphic_name": "pinhole", '
        '"data": {"width": Infinity, "height": 1, "focal_length": 1.0, "principal_point": [0, 0]}}}]}'
        % INTRINSICS_SCHEMA_VERSION,
        encoding="utf-8",
    )
    assert load_intrinsics_json(p) == {}
