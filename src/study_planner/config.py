"""Study configuration: weekly hours, day exceptions and review aggressiveness."""
from dataclasses import dataclass, fields
from datetime import date
from pathlib import Path

import yaml

from study_planner.capacity import DailyHoursRule
from study_planner.db import connect
from study_planner.repetition import AGGRESSIVENESS_PROFILES


@dataclass
class StudyConfig:
    weekday_hours: float = 3.0
    weekend_hours: float = 5.0
    study_saturday: bool = False
    study_sunday: bool = False
    aggressiveness: str = "balanced"

    def __post_init__(self):
        if self.aggressiveness not in AGGRESSIVENESS_PROFILES:
            raise ValueError(f"Unknown aggressiveness: {self.aggressiveness}")
        if self.weekday_hours < 0 or self.weekend_hours < 0:
            raise ValueError("Daily hours cannot be negative")


def get_setting(db_path: str, key: str, default: str = None) -> str | None:
    with connect(db_path) as conn:
        row = conn.execute("SELECT value FROM user_settings WHERE key = ?", (key,)).fetchone()
    return row["value"] if row else default


def set_setting(db_path: str, key: str, value: str) -> None:
    with connect(db_path) as conn:
        conn.execute(
            "INSERT INTO user_settings (key, value) VALUES (?, ?) ON CONFLICT(key) DO UPDATE SET value=?",
            (key, value, value),
        )


def _parse(field_type, raw: str):
    if field_type in (bool, "bool"):
        return raw in ("1", "true", "True")
    if field_type in (float, "float"):
        return float(raw)
    return raw


def get_study_config(db_path: str) -> StudyConfig:
    values = {}
    for f in fields(StudyConfig):
        raw = get_setting(db_path, f.name)
        if raw is not None:
            values[f.name] = _parse(f.type, raw)
    return StudyConfig(**values)


def save_study_config(db_path: str, config: StudyConfig) -> None:
    for f in fields(StudyConfig):
        value = getattr(config, f.name)
        set_setting(db_path, f.name, str(int(value)) if isinstance(value, bool) else str(value))


def load_config_file(path: str) -> StudyConfig:
    """Read a StudyConfig from YAML; unknown keys are rejected."""
    data = yaml.safe_load(Path(path).read_text()) or {}
    known = {f.name for f in fields(StudyConfig)}
    unknown = set(data) - known - {"exceptions"}
    if unknown:
        raise ValueError(f"Unknown config keys: {sorted(unknown)}")
    return StudyConfig(**{k: v for k, v in data.items() if k in known})


def load_exceptions_file(path: str) -> dict:
    """Day exceptions listed under ``exceptions:`` in a YAML config file."""
    data = yaml.safe_load(Path(path).read_text()) or {}
    result = {}
    for key, value in (data.get("exceptions") or {}).items():
        day = key if isinstance(key, date) else date.fromisoformat(str(key))
        if isinstance(value, dict):
            result[day] = (float(value["hours"]), value.get("reason"))
        else:
            result[day] = (float(value), None)
    return result


def set_day_exception(db_path: str, day: date, hours: float, reason: str = None) -> None:
    if hours < 0:
        raise ValueError("Daily hours cannot be negative")
    with connect(db_path) as conn:
        conn.execute(
            "INSERT INTO day_exceptions (day, hours, reason) VALUES (?, ?, ?) "
            "ON CONFLICT(day) DO UPDATE SET hours=excluded.hours, reason=excluded.reason",
            (day.isoformat(), hours, reason),
        )


def remove_day_exception(db_path: str, day: date) -> None:
    with connect(db_path) as conn:
        conn.execute("DELETE FROM day_exceptions WHERE day = ?", (day.isoformat(),))


def get_day_exceptions(db_path: str) -> dict:
    """{date: {"hours": float, "reason": str | None}}"""
    with connect(db_path) as conn:
        rows = conn.execute("SELECT * FROM day_exceptions ORDER BY day").fetchall()
    return {date.fromisoformat(r["day"]): {"hours": r["hours"], "reason": r["reason"]} for r in rows}


def import_config_file(db_path: str, path: str) -> StudyConfig:
    """Load a YAML config file and store it, exceptions included."""
    config = load_config_file(path)
    save_study_config(db_path, config)
    for day, (hours, reason) in load_exceptions_file(path).items():
        set_day_exception(db_path, day, hours, reason)
    return config


def get_daily_hours_rule(db_path: str) -> DailyHoursRule:
    config = get_study_config(db_path)
    return DailyHoursRule(
        weekday_hours=config.weekday_hours,
        weekend_hours=config.weekend_hours,
        study_saturday=config.study_saturday,
        study_sunday=config.study_sunday,
        exceptions={day: e["hours"] for day, e in get_day_exceptions(db_path).items()},
    )
