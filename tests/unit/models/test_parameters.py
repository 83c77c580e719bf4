"""Tests for job parameter normalization and job keys."""

from __future__ import annotations

import pytest

from chunkwise.core.exceptions import InvalidJobParameters
from chunkwise.models.parameters import job_key, normalize_parameters, validate_job_name


class TestNormalizeParameters:
    def test_none_is_empty(self):
        assert normalize_parameters(None) == {}

    def test_sorted_by_name(self):
        assert list(normalize_parameters({"b": 1, "a": 2})) == ["a", "b"]

    @pytest.mark.parametrize("value", [None, [1], {"x": 1}, object()])
    def test_rejects_non_scalar(self, value):
        with pytest.raises(InvalidJobParameters):
            normalize_parameters({"p": value})

    @pytest.mark.parametrize("value", [float("nan"), float("inf")])
    def test_rejects_non_finite(self, value):
        with pytest.raises(InvalidJobParameters):
            normalize_parameters({"p": value})

    def test_rejects_non_string_name(self):
        with pytest.raises(InvalidJobParameters):
            normalize_parameters({1: "x"})

    def test_rejects_non_mapping(self):
        with pytest.raises(InvalidJobParameters):
            normalize_parameters([("a", 1)])

    def test_invalid_parameters_is_value_error(self):
        with pytest.raises(ValueError):
            normalize_parameters({"p": None})


class TestJobKey:
    def test_order_independent(self):
        assert job_key({"a": 1, "b": "x"}) == job_key({"b": "x", "a": 1})

    def test_type_sensitive(self):
        assert job_key({"run": 1}) != job_key({"run": "1"})

    def test_value_sensitive(self):
        assert job_key({"run": 1}) != job_key({"run": 2})

    def test_empty_parameters_have_stable_key(self):
        assert job_key({}) == job_key(None)
        assert len(job_key({})) == 32


class TestValidateJobName:
    @pytest.mark.parametrize("name", ["", "   ", None, 5])
    def test_rejects_blank(self, name):
        with pytest.raises(InvalidJobParameters):
            validate_job_name(name)

    def test_accepts_name(self):
        assert validate_job_name("csvProcessingJob") == "csvProcessingJob"
