"""Tests for the recalculation orchestrator."""

import logging

import pytest

from calcfield import (
    DivisionByZero,
    DomainError,
    FormulaDefinition,
    InvalidValue,
    MissingVariable,
    UpstreamFailed,
    build_graph,
    recalculate,
    recalculate_all,
)

from .conftest import OTHER_PATIENT, PATIENT, CountingStore


class TestRecalculate:
    def test_cascades_in_dependency_order(self, clinic_graph, store):
        result = recalculate("weight", clinic_graph, store, PATIENT)

        assert result.updated == {"bmi": 22.86, "bmi_category": 4.0}
        assert result.failed == {}
        assert store.writes == [(PATIENT, "bmi", 22.86), (PATIENT, "bmi_category", 4.0)]

    def test_only_dependents_recomputed(self, clinic_graph, store):
        result = recalculate("weight", clinic_graph, store, PATIENT)
        assert "ideal_weight" not in result.updated
        assert "waist_hip_ratio" not in result.updated

    def test_shared_input(self, clinic_graph, store):
        result = recalculate("height", clinic_graph, store, PATIENT)
        assert list(result.updated) == ["bmi", "bmi_category", "ideal_weight"]
        assert result.updated["ideal_weight"] == 67.4

    def test_each_input_read_once(self, clinic_graph, store):
        recalculate("height", clinic_graph, store, PATIENT)
        assert store.reads["height"] == 1
        assert store.reads["weight"] == 1

    def test_recomputed_values_used_downstream(self, clinic_graph, store):
        store.set("bmi", PATIENT, 99.0)
        store.set("bmi_category", PATIENT, 19.0)
        recalculate("weight", clinic_graph, store, PATIENT)
        # bmi_category must come from the fresh bmi, not the stale stored one
        assert "bmi" not in store.reads
        assert store.read("bmi_category", PATIENT) == 4.0

    def test_subject_isolation(self, clinic_graph, store):
        result = recalculate("weight", clinic_graph, store, OTHER_PATIENT)
        assert result.updated == {"bmi": 27.78, "bmi_category": 5.0}
        assert store.read("bmi", PATIENT) is None

    def test_unaffected_calculated_dependency_read_from_store(self):
        graph = build_graph(
            [
                FormulaDefinition(name="bmi", expression="{weight} / ({height} * {height})"),
                FormulaDefinition(name="risk", expression="{bmi} + {age}"),
            ]
        )
        store = CountingStore({PATIENT: {"bmi": 25, "age": 40}})
        result = recalculate("age", graph, store, PATIENT)
        assert result.updated == {"risk": 65.0}

    def test_nothing_depends_on_change(self, clinic_graph, store):
        result = recalculate("shoe_size", clinic_graph, store, PATIENT)
        assert result.updated == {}
        assert result.failed == {}
        assert store.writes == []

    def test_qualified_reference_recomputed(self):
        graph = build_graph(
            [FormulaDefinition(name="weight_change", expression="{weight} - {previous:weight}")]
        )
        store = CountingStore({PATIENT: {"weight": 68, "previous:weight": 70}})
        result = recalculate("weight", graph, store, PATIENT)
        assert result.updated == {"weight_change": -2.0}


class TestPartialFailure:
    def test_independent_formula_still_updates(self):
        graph = build_graph(
            [
                FormulaDefinition(name="A", expression="{weight} * {missing_input}"),
                FormulaDefinition(name="B", expression="{weight} * 2"),
            ]
        )
        store = CountingStore({PATIENT: {"weight": 70, "A": 5}})

        result = recalculate("weight", graph, store, PATIENT)

        assert result.updated == {"B": 140.0}
        assert isinstance(result.failed["A"], MissingVariable)
        assert result.failed["A"].name == "missing_input"
        assert store.read("A", PATIENT) == 5.0
        assert not result.ok

    def test_rounding_out_of_range_is_recorded(self):
        graph = build_graph(
            [
                FormulaDefinition(name="r", expression="round({w}, 500)"),
                FormulaDefinition(name="doubled", expression="{w} * 2"),
            ]
        )
        store = CountingStore({PATIENT: {"w": 1.5}})

        result = recalculate("w", graph, store, PATIENT)

        assert "r" in result.failed
        assert isinstance(result.failed["r"], DomainError)
        assert result.updated == {"doubled": 3.0}

    def test_failure_blocks_only_downstream(self, clinic_graph, store):
        store.set("height", PATIENT, 0)
        store.set("bmi_category", PATIENT, 4.0)

        result = recalculate("height", clinic_graph, store, PATIENT)

        assert isinstance(result.failed["bmi"], DivisionByZero)
        assert isinstance(result.failed["bmi_category"], UpstreamFailed)
        assert result.failed["bmi_category"].name == "bmi"
        assert result.updated == {"ideal_weight": 0.0}
        assert store.read("bmi_category", PATIENT) == 4.0

    def test_non_numeric_stored_value(self, clinic_graph, store):
        store.set("weight", PATIENT, {"type": "text", "value": "heavy"})
        result = recalculate("weight", clinic_graph, store, PATIENT)
        assert isinstance(result.failed["bmi"], InvalidValue)
        assert set(result.failed) == {"bmi", "bmi_category"}
        assert result.updated == {}

    def test_errors_as_messages(self, clinic_graph, store):
        store.set("height", PATIENT, 0)
        result = recalculate("height", clinic_graph, store, PATIENT)
        assert result.errors()["bmi"] == "division by zero"

    def test_failure_logged(self, clinic_graph, store, caplog):
        store.set("height", PATIENT, 0)
        with caplog.at_level(logging.WARNING, logger="calcfield.recalc"):
            recalculate("height", clinic_graph, store, PATIENT)
        assert "bmi[patient-1]: not recalculated: division by zero" in caplog.text

    def test_store_errors_outside_engine_propagate(self, clinic_graph):
        class BrokenStore(CountingStore):
            def read(self, name, subject_id):
                raise ConnectionError("database unavailable")

        with pytest.raises(ConnectionError):
            recalculate("weight", clinic_graph, BrokenStore(), PATIENT)


class TestRecalculateAll:
    def test_all_formulas(self, clinic_graph, store):
        result = recalculate_all(clinic_graph, store, PATIENT)
        assert result.updated == {
            "bmi": 22.86,
            "bmi_category": 4.0,
            "ideal_weight": 67.4,
            "waist_hip_ratio": 0.8,
        }

    def test_only_and_downstream(self, clinic_graph, store):
        result = recalculate_all(clinic_graph, store, PATIENT, only="bmi")
        assert list(result.updated) == ["bmi", "bmi_category"]

    def test_missing_inputs_reported(self, clinic_graph, store):
        result = recalculate_all(clinic_graph, store, OTHER_PATIENT)
        assert set(result.failed) == {"waist_hip_ratio"}
        assert isinstance(result.failed["waist_hip_ratio"], MissingVariable)

    def test_only_must_be_calculated(self, clinic_graph, store):
        with pytest.raises(KeyError):
            recalculate_all(clinic_graph, store, PATIENT, only="weight")
