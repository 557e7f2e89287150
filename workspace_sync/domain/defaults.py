from copy import deepcopy
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..schemas.finance import Category, FinanceData, FinanceSettings
from ..schemas.health import HealthData, HealthSettings, QuitMilestone
from ..utils.timestamps import now_ms

DEFAULTS_PATH = Path(__file__).resolve().parents[1] / "data" / "defaults.yaml"


@lru_cache(maxsize=1)
def _load_defaults() -> Dict[str, Any]:
    content = DEFAULTS_PATH.read_text(encoding="utf-8")
    parsed = yaml.safe_load(content)
    if not isinstance(parsed, dict):
        raise RuntimeError(f"{DEFAULTS_PATH} did not produce a mapping")
    return parsed


def _section(*keys: str) -> Any:
    value: Any = _load_defaults()
    for key in keys:
        value = value[key]
    return deepcopy(value)


def default_finance_data(created_at: Optional[int] = None) -> FinanceData:
    stamp = created_at if created_at is not None else now_ms()
    categories = {
        item["id"]: Category(**item, is_custom=False, created_at=stamp)
        for item in _section("finance", "categories")
    }
    settings = FinanceSettings.model_validate(_section("finance", "settings"))
    return FinanceData(categories=categories, settings=settings)


def default_health_settings() -> HealthSettings:
    return HealthSettings(**_section("health", "settings"))


def default_health_data() -> HealthData:
    return HealthData(settings=default_health_settings())


def default_milestones() -> List[QuitMilestone]:
    return [QuitMilestone(**item) for item in _section("quit_milestones")]
