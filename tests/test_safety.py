"""
Larm -- Safety & Input Guard Tests
Parameter range rejection, file type and size preflight.

Run with: pytest tests/test_safety.py -v
"""

import math
import os
import sys

import pytest
from pydantic import ValidationError

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.params import EffectParameters, PARAM_ORDER, PARAM_RANGES
from core.safety import (
    SafetyError,
    check_upload_size,
    preflight,
    range_violations,
    validate_params,
)
from conftest import _make_test_image


class TestParamRanges:

    def test_defaults_in_range(self):
        assert range_violations(EffectParameters()) == []

    def test_every_field_has_range(self):
        assert set(PARAM_ORDER) == set(PARAM_RANGES)

    @pytest.mark.parametrize("name", sorted(PARAM_RANGES))
    def test_bounds_inclusive(self, name):
        lo, hi = PARAM_RANGES[name]
        assert validate_params(EffectParameters(**{name: lo}))
        assert validate_params(EffectParameters(**{name: hi}))

    def test_rejects_not_clamps(self):
        params = EffectParameters(size=500.0)
        with pytest.raises(SafetyError, match="size"):
            validate_params(params)
        assert params.size == 500.0

    def test_reports_every_violation(self):
        problems = range_violations(EffectParameters(depth=2.0, exposure=-3.0))
        assert len(problems) == 2

    def test_non_finite_rejected_by_model(self):
        with pytest.raises(ValidationError):
            EffectParameters(intensity=math.nan)
        with pytest.raises(ValidationError):
            EffectParameters(size=math.inf)

    def test_crystal_sharpness_alias(self):
        assert EffectParameters.model_validate({"crystalSharpness": 4.0}).sharpness == 4.0
        assert EffectParameters.model_validate({"sharpness": 5.0}).sharpness == 5.0

    def test_parameters_immutable(self):
        params = EffectParameters()
        with pytest.raises(ValidationError):
            params.size = 10.0
        assert params.with_overrides(size=10.0).size == 10.0
        assert params.size == 2.5


class TestPreflight:

    def test_valid_image(self, tmp_path):
        path = tmp_path / "ok.png"
        _make_test_image(64, 48).save(path)
        info = preflight(str(path))
        assert info["extension"] == ".png"
        assert info["size_mb"] > 0

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            preflight(str(tmp_path / "nope.png"))

    def test_bad_extension(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("hello")
        with pytest.raises(SafetyError, match="not allowed"):
            preflight(str(path))

    def test_uppercase_extension(self, tmp_path):
        path = tmp_path / "SHOUT.JPG"
        _make_test_image(32, 32).save(path, format="JPEG")
        assert preflight(str(path))["extension"] == ".jpg"

    def test_size_cap(self, tmp_path):
        path = tmp_path / "big.png"
        _make_test_image(256, 256).save(path)
        with pytest.raises(SafetyError, match="exceeds"):
            preflight(str(path), max_mb=0)


class TestUploadSize:

    def test_under_limit(self):
        check_upload_size(1024, max_mb=1)

    def test_exactly_at_limit(self):
        check_upload_size(1024 * 1024, max_mb=1)

    def test_over_limit(self):
        with pytest.raises(SafetyError):
            check_upload_size(1024 * 1024 + 1, max_mb=1)
