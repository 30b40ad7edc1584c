"""Static stage definition table loaded from ``config/stages.yaml``."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from servicepro.core.validation import InvalidStageError, InvalidStepError

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"


@dataclass(frozen=True, slots=True)
class StepDefinition:
    key: str
    label: str
    description: str = ""
    required: bool = True
    auto_completable: bool = False


@dataclass(frozen=True, slots=True)
class StageDefinition:
    key: str
    name: str
    order: int
    description: str = ""
    color: str | None = None
    next_stage: str | None = None
    steps: tuple[StepDefinition, ...] = field(default_factory=tuple)

    @property
    def is_terminal(self) -> bool:
        return self.next_stage is None

    @property
    def required_steps(self) -> tuple[StepDefinition, ...]:
        return tuple(step for step in self.steps if step.required)

    def step(self, step_key: str) -> StepDefinition:
        for step in self.steps:
            if step.key == step_key:
                return step
        raise InvalidStepError(self.key, step_key)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "order": self.order,
            "description": self.description,
            "color": self.color,
            "next_stage": self.next_stage,
            "steps": [
                {
                    "key": step.key,
                    "label": step.label,
                    "description": step.description,
                    "required": step.required,
                    "auto_completable": step.auto_completable,
                }
                for step in self.steps
            ],
        }


def _parse_stages(raw: dict[str, Any]) -> dict[str, StageDefinition]:
    stages: dict[str, StageDefinition] = {}
    for order, item in enumerate(raw.get("stages") or [], start=1):
        steps = tuple(
            StepDefinition(
                key=str(step["key"]),
                label=str(step.get("label") or step["key"]),
                description=str(step.get("description") or ""),
                required=bool(step.get("required", True)),
                auto_completable=bool(step.get("auto_completable", False)),
            )
            for step in item.get("steps") or []
        )
        stage = StageDefinition(
            key=str(item["key"]),
            name=str(item.get("name") or item["key"]),
            order=order,
            description=str(item.get("description") or ""),
            color=item.get("color"),
            next_stage=item.get("next"),
            steps=steps,
        )
        stages[stage.key] = stage

    for stage in stages.values():
        if stage.next_stage is not None and stage.next_stage not in stages:
            raise ValueError(f"stage '{stage.key}' points at unknown successor '{stage.next_stage}'")
    return stages


def load_stage_table(path: Path | None = None) -> dict[str, StageDefinition]:
    path = path or CONFIG_DIR / "stages.yaml"
    with path.open("r", encoding="utf-8") as fp:
        return _parse_stages(yaml.safe_load(fp) or {})


STAGES: dict[str, StageDefinition] = load_stage_table()
INITIAL_STAGE = next(iter(STAGES))


def get_stage(stage_key: str) -> StageDefinition:
    try:
        return STAGES[stage_key]
    except KeyError:
        raise InvalidStageError(stage_key) from None


def list_stages() -> list[StageDefinition]:
    return sorted(STAGES.values(), key=lambda stage: stage.order)
