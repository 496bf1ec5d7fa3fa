"""Load study items from YAML or JSON files."""
import json
from pathlib import Path

import yaml

from study_planner.models import StudyItem


def read_items_data(file_path: str) -> list[dict]:
    path = Path(file_path)
    suffix = path.suffix.lower()
    if suffix == ".json":
        data = json.loads(path.read_text())
    elif suffix in (".yaml", ".yml"):
        data = yaml.safe_load(path.read_text())
    else:
        raise ValueError(f"Unsupported items file type: {suffix or path.name}")
    if isinstance(data, dict):
        data = data.get("items", [])
    if not isinstance(data, list):
        raise ValueError("Items file must contain a list of items")
    return data


def parse_item(entry: dict, index: int) -> StudyItem:
    """Build a StudyItem; ``minutes`` or ``hours`` give the estimate."""
    if "minutes" in entry:
        minutes = int(entry["minutes"])
    elif "hours" in entry:
        minutes = round(float(entry["hours"]) * 60)
    else:
        raise ValueError(f"Item {index} has no minutes or hours estimate")
    topic_id = entry.get("topic_id")
    subtopic_id = entry.get("subtopic_id")
    return StudyItem(
        id=str(entry.get("id") or subtopic_id or topic_id or f"item-{index}"),
        title=entry["title"],
        estimated_minutes=minutes,
        topic_id=str(topic_id) if topic_id is not None else None,
        subtopic_id=str(subtopic_id) if subtopic_id is not None else None,
        document_id=entry.get("document_id"),
    )


def load_items(file_path: str) -> list[StudyItem]:
    return [parse_item(entry, i) for i, entry in enumerate(read_items_data(file_path))]
