"""Tests for engine limits and catalog loading."""

import pytest
from pydantic import ValidationError

from calcfield import DEFAULT_LIMITS, EngineLimits, LimitExceededError, load_catalog, load_limits


class TestEngineLimits:
    def test_defaults(self):
        assert DEFAULT_LIMITS.max_expression_length == 1000
        assert DEFAULT_LIMITS.max_dependencies == 50
        assert DEFAULT_LIMITS.max_graph_size == 500

    def test_at_limit_allowed(self):
        limits = EngineLimits(max_expression_length=5, max_dependencies=2, max_graph_size=3)
        limits.check_expression("1 + 2")
        limits.check_dependencies(["a", "b"])
        limits.check_graph(3)

    def test_over_limit(self):
        limits = EngineLimits(max_expression_length=5)
        with pytest.raises(LimitExceededError) as exc_info:
            limits.check_expression("1 + 22")
        assert exc_info.value.what == "expression length"
        assert exc_info.value.size == 6
        assert exc_info.value.limit == 5

    def test_must_be_positive(self):
        with pytest.raises(ValidationError):
            EngineLimits(max_dependencies=0)

    def test_unknown_key_rejected(self):
        with pytest.raises(ValidationError):
            EngineLimits(max_depth=3)


class TestLoadLimits:
    def test_partial_file_keeps_defaults(self, tmp_path):
        path = tmp_path / "limits.yaml"
        path.write_text("max_dependencies: 20\n")
        limits = load_limits(path)
        assert limits.max_dependencies == 20
        assert limits.max_expression_length == 1000

    def test_empty_file(self, tmp_path):
        path = tmp_path / "limits.yaml"
        path.write_text("")
        assert load_limits(path) == DEFAULT_LIMITS

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "limits.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ValueError, match="must contain a mapping"):
            load_limits(path)


class TestLoadCatalog:
    def test_list(self, tmp_path):
        path = tmp_path / "formulas.yaml"
        path.write_text('- name: double\n  expression: "{a} * 2"\n')
        assert load_catalog(path) == [{"name": "double", "expression": "{a} * 2"}]

    def test_formulas_key(self, tmp_path):
        path = tmp_path / "formulas.yaml"
        path.write_text(
            "formulas:\n"
            "  - name: bmi\n"
            '    expression: "{weight} / ({height} * {height})"\n'
            "    decimal_places: 1\n"
        )
        [entry] = load_catalog(path)
        assert entry["decimal_places"] == 1

    def test_bad_shape(self, tmp_path):
        path = tmp_path / "formulas.yaml"
        path.write_text("- just a string\n")
        with pytest.raises(ValueError):
            load_catalog(path)
