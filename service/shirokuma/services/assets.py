"""
Local file assets: calendrical lookup tables and prompt templates.

Loaded once at startup; a missing or malformed file is fatal.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from shirokuma.agents.schemas import DiagnosisType, PromptTemplate

ANIMALS_FILE = "animals.json"
STEMS_FILE = "stems.json"
TEMPLATES_DIR = "templates"


class AssetError(Exception):
    """Raised when a required asset file is missing or invalid."""


@dataclass(frozen=True)
class Assets:
    """Read-only lookup tables and templates."""
    animals: dict[int, str]  # cycle index (1-60) -> animal
    stems: dict[str, dict[str, str]]  # stem symbol -> {"element", "guardian"}
    templates: dict[str, PromptTemplate] = field(default_factory=dict)  # name -> template

    def template_for(self, diagnosis_type: DiagnosisType) -> Optional[PromptTemplate]:
        for template in self.templates.values():
            if template.diagnosis_type == diagnosis_type:
                return template
        return None

    def label_types(self) -> dict[str, DiagnosisType]:
        """Diagnosis label -> type, from the labels declared in each template."""
        return {
            label: template.diagnosis_type
            for template in self.templates.values()
            for label in template.labels
        }

    def template_for_form(self, form_id: str) -> Optional[PromptTemplate]:
        for template in self.templates.values():
            if form_id in template.form_ids:
                return template
        return None


def _read_json(path: Path) -> Any:
    if not path.is_file():
        raise AssetError(f"Required asset file not found: {path}")
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise AssetError(f"Invalid JSON in {path}: {e}") from e


def load_animals(path: Path) -> dict[int, str]:
    raw = _read_json(path)
    if not isinstance(raw, dict):
        raise AssetError(f"{path} must be an object keyed by cycle index")
    try:
        return {int(key): str(value) for key, value in raw.items()}
    except ValueError as e:
        raise AssetError(f"Non-numeric cycle index in {path}: {e}") from e


def load_stems(path: Path) -> dict[str, dict[str, str]]:
    raw = _read_json(path)
    if not isinstance(raw, dict):
        raise AssetError(f"{path} must be an object keyed by stem symbol")
    return {
        symbol: {k: str(v) for k, v in attrs.items()}
        for symbol, attrs in raw.items()
        if isinstance(attrs, dict)
    }


def load_templates(directory: Path) -> dict[str, PromptTemplate]:
    if not directory.is_dir():
        raise AssetError(f"Template directory not found: {directory}")

    templates: dict[str, PromptTemplate] = {}
    for path in sorted(directory.glob("*.json")):
        raw = _read_json(path)
        try:
            template = PromptTemplate.model_validate(raw)
        except ValidationError as e:
            raise AssetError(f"Invalid prompt template {path.name}: {e}") from e
        templates[template.name] = template

    if not templates:
        raise AssetError(f"No prompt templates found in {directory}")
    return templates


def load_assets(data_dir: Path) -> Assets:
    """
    Load lookup tables and templates from data_dir.

    Raises:
        AssetError: if any required file is missing or invalid
    """
    data_dir = Path(data_dir)
    return Assets(
        animals=load_animals(data_dir / ANIMALS_FILE),
        stems=load_stems(data_dir / STEMS_FILE),
        templates=load_templates(data_dir / TEMPLATES_DIR),
    )
