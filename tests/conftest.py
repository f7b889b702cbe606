import pytest

from calcfield import FormulaDefinition, InMemoryStore, build_graph

PATIENT = "patient-1"
OTHER_PATIENT = "patient-2"


class CountingStore(InMemoryStore):
    """InMemoryStore that counts reads per name."""

    def __init__(self, values=None):
        super().__init__(values)
        self.reads: dict[str, int] = {}

    def read(self, name, subject_id):
        self.reads[name] = self.reads.get(name, 0) + 1
        return super().read(name, subject_id)


@pytest.fixture
def clinic_definitions():
    return [
        FormulaDefinition(name="bmi", expression="{weight} / ({height} * {height})"),
        FormulaDefinition(name="bmi_category", expression="floor({bmi} / 5)", decimal_places=0),
        FormulaDefinition(name="ideal_weight", expression="22 * {height} * {height}", decimal_places=1),
        FormulaDefinition(name="waist_hip_ratio", expression="{waist} / {hip}"),
    ]


@pytest.fixture
def clinic_graph(clinic_definitions):
    return build_graph(clinic_definitions)


@pytest.fixture
def store():
    return CountingStore(
        {
            PATIENT: {"weight": 70, "height": 1.75, "waist": 80, "hip": 100},
            OTHER_PATIENT: {"weight": 90, "height": 1.80},
        }
    )
