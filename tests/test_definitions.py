"""Tests for FormulaDefinition."""

from uuid import UUID

import pytest
from pydantic import ValidationError

from calcfield import FormulaDefinition, ParseError, SelfReferenceError


class TestFormulaDefinition:
    def test_dependencies_derived(self):
        defn = FormulaDefinition(name="bmi", expression="{weight} / ({height} * {height})")
        assert defn.dependencies == ("weight", "height")

    def test_defaults(self):
        defn = FormulaDefinition(name="x", expression="1")
        assert isinstance(defn.id, UUID)
        assert defn.decimal_places == 2
        assert defn.dependencies == ()

    def test_dump_includes_dependencies(self):
        defn = FormulaDefinition(name="double", expression="{a} * 2")
        assert defn.model_dump()["dependencies"] == ("a",)

    def test_invalid_expression_rejected(self):
        with pytest.raises(ParseError):
            FormulaDefinition(name="bad", expression="{a} +")

    def test_self_reference_rejected(self):
        with pytest.raises(SelfReferenceError) as exc_info:
            FormulaDefinition(name="bmi", expression="{bmi} + 1")
        assert exc_info.value.name == "bmi"

    def test_measure_self_reference_rejected(self):
        with pytest.raises(SelfReferenceError):
            FormulaDefinition(name="bmi", expression="{measure:bmi} * 2")

    def test_time_series_of_itself_allowed(self):
        defn = FormulaDefinition(name="weight_avg", expression="{previous:weight_avg} + 1")
        assert defn.dependencies == ("previous:weight_avg",)

    @pytest.mark.parametrize("name", ["", "1st", "has space", "measure:x"])
    def test_name_must_be_identifier(self, name):
        with pytest.raises(ValidationError):
            FormulaDefinition(name=name, expression="1")

    @pytest.mark.parametrize("places", [-1, 11])
    def test_decimal_places_bounds(self, places):
        with pytest.raises(ValidationError):
            FormulaDefinition(name="x", expression="1", decimal_places=places)

    def test_immutable(self):
        defn = FormulaDefinition(name="x", expression="{a}")
        with pytest.raises(ValidationError):
            defn.expression = "{b}"

    def test_revise_rederives_dependencies(self):
        defn = FormulaDefinition(name="x", expression="{a} + {b}", unit="kg")
        revised = defn.revise(expression="{c} * 2")
        assert revised.dependencies == ("c",)
        assert revised.id == defn.id
        assert revised.unit == "kg"
        assert defn.dependencies == ("a", "b")

    def test_revise_validates(self):
        defn = FormulaDefinition(name="x", expression="{a}")
        with pytest.raises(SelfReferenceError):
            defn.revise(expression="{x} + 1")
