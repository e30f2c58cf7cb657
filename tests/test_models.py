"""AnchorRecord shape and validate_anchor() ordering."""

import math

import pytest
from pydantic import ValidationError

from anchor_helpers import anchor_input, make_record
from chore_anchors.errors import AnchorValidationError
from chore_anchors.models.anchor import AnchorRecord, to_wire_keys, validate_anchor


class TestValidateAnchor:

    def test_valid_input_passes(self):
        assert validate_anchor(anchor_input()) is None

    @pytest.mark.parametrize("name", [None, ""])
    def test_missing_name(self, name):
        error = validate_anchor(anchor_input(name=name, description="x"))
        assert isinstance(error, AnchorValidationError)
        assert "name" in str(error)

    @pytest.mark.parametrize("position", [
        None,
        {"x": 0, "y": 0},
        {"x": 0, "y": "1", "z": 0},
        {"x": 0, "y": 0, "z": True},
        {"x": math.nan, "y": 0, "z": 0},
        {"x": 0, "y": math.inf, "z": 0},
        [0, 0, 0],
    ])
    def test_bad_position(self, position):
        error = validate_anchor(anchor_input(position=position))
        assert isinstance(error, AnchorValidationError)
        assert "position" in str(error)

    def test_missing_description(self):
        data = anchor_input()
        data["description"] = ""
        error = validate_anchor(data)
        assert "description" in str(error)

    def test_first_failure_wins(self):
        error = validate_anchor({"name": "", "position": None, "description": ""})
        assert "name" in str(error)

    def test_accepts_record(self):
        assert validate_anchor(make_record()) is None


class TestAnchorRecord:

    def test_defaults(self):
        record = make_record()
        assert record.completed is False
        assert record.min_duration_seconds == 60
        assert record.started_at is None
        assert record.finished_at is None
        assert record.history == []
        assert record.assigned_kid_id is None

    def test_json_uses_camel_case(self):
        data = make_record(assignedKidId="kid-1").to_json_dict()
        assert data["qrStartCode"] == "a1-start"
        assert data["minDurationSeconds"] == 60
        assert data["assignedKidId"] == "kid-1"
        assert "qr_start_code" not in data

    def test_snake_case_input_accepted(self):
        record = make_record(min_duration_seconds=120)
        assert record.min_duration_seconds == 120

    def test_rejects_non_positive_duration(self):
        with pytest.raises(ValidationError):
            make_record(minDurationSeconds=0)

    def test_rejects_non_finite_position(self):
        with pytest.raises(ValidationError):
            make_record(position={"x": math.inf, "y": 0, "z": 0})

    def test_round_trips_through_json(self):
        record = make_record(history=[{"event": "scanned", "timestamp": 1}])
        assert AnchorRecord.model_validate_json(record.model_dump_json(by_alias=True)) == record


def test_to_wire_keys_renames_attributes_only():
    assert to_wire_keys({"assigned_kid_id": "k", "name": "n", "extra": 1}) == {
        "assignedKidId": "k", "name": "n", "extra": 1,
    }


def test_unknown_fields_are_kept():
    record = make_record(points=5, tags=["kitchen"])
    data = record.to_json_dict()
    assert data["points"] == 5
    assert data["tags"] == ["kitchen"]
    assert AnchorRecord.model_validate_json(record.model_dump_json(by_alias=True)).to_json_dict() == data
