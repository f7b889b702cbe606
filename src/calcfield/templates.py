"""Built-in formula templates for common clinical calculations.

Templates are starting points for calculated fields and measures. A field
mapping renames the template's variables to the names used in a clinic:

    tpl = apply_template("bmi", {"weight_kg": "poids", "height_m": "taille"})
    tpl.formula  # '{poids} / ({taille} * {taille})'
"""

from functools import cache
from importlib import resources
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, computed_field

from .definitions import FormulaDefinition
from .parser import parse
from .references import extract_references, rename_references
from .unparse import unparse

TemplateKind = Literal["field", "measure"]


class TemplateNotFoundError(KeyError):
    pass


class FormulaTemplate(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    kind: TemplateKind = "field"
    name: str
    category: str
    description: str = ""
    formula: str
    decimal_places: int = 2
    unit: str | None = None
    help_text: str | None = None
    field_mapping: dict[str, str] = {}

    @computed_field
    @property
    def dependencies(self) -> list[str]:
        return extract_references(parse(self.formula))

    def to_definition(self, name: str) -> FormulaDefinition:
        return FormulaDefinition(
            name=name,
            expression=self.formula,
            decimal_places=self.decimal_places,
            label=self.name,
            unit=self.unit,
        )


@cache
def _load() -> tuple[FormulaTemplate, ...]:
    text = resources.files("calcfield").joinpath("data/templates.yaml").read_text(encoding="utf-8")
    return tuple(FormulaTemplate(**entry) for entry in yaml.safe_load(text))


def list_templates(kind: TemplateKind | None = None, category: str | None = None):
    return [
        t
        for t in _load()
        if (kind is None or t.kind == kind) and (category is None or t.category == category)
    ]


def categories(kind: TemplateKind | None = None) -> list[str]:
    return sorted({t.category for t in list_templates(kind)})


def get_template(template_id: str, kind: TemplateKind = "field") -> FormulaTemplate:
    for t in list_templates(kind):
        if t.id == template_id:
            return t
    raise TemplateNotFoundError(f"template not found: {template_id}")


def apply_template(
    template_id: str,
    field_mapping: dict[str, str] | None = None,
    kind: TemplateKind = "field",
) -> FormulaTemplate:
    """Template with its variables renamed through `field_mapping`."""
    template = get_template(template_id, kind)
    if not field_mapping:
        return template

    formula = unparse(rename_references(parse(template.formula), field_mapping))
    parse(formula)  # rejects mapped names that are not valid references
    return template.model_copy(update={"formula": formula, "field_mapping": dict(field_mapping)})
