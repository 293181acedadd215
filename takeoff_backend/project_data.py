"""
Helpers for the structured takeoff data stored on each project.
"""

from __future__ import annotations

import copy
import json
from typing import Any, Optional

from takeoff_backend.errors import ValidationError

COLLECTION_KEYS = (
    "symbols",
    "disciplines",
    "areas",
    "measurements",
    "measurementGroups",
    "daliNetworks",
    "daliDevices",
    "ecdTypes",
    "daliNetworkTemplates",
)

# Collections a new project inherits from a template; drawing-specific ones start empty.
TEMPLATE_KEYS = (
    "symbols",
    "disciplines",
    "measurementGroups",
    "ecdTypes",
    "daliNetworkTemplates",
)

DEFAULT_DISCIPLINES = (
    {"id": "disc_1", "name": "Electrical", "parentId": None},
    {"id": "disc_2", "name": "Plumbing", "parentId": None},
    {"id": "disc_3", "name": "HVAC", "parentId": None},
)


def default_project_data() -> dict[str, list]:
    data: dict[str, list] = {key: [] for key in COLLECTION_KEYS}
    data["disciplines"] = [dict(d) for d in DEFAULT_DISCIPLINES]
    return data


def normalize_project_data(data: Any) -> dict[str, Any]:
    """
    Ensure every collection key exists and holds a list.

    Unknown keys are kept untouched so newer clients can store extra fields.
    """
    if not isinstance(data, dict):
        raise ValidationError("Project data must be a JSON object")
    normalized = dict(data)
    for key in COLLECTION_KEYS:
        value = normalized.get(key)
        if value is None:
            normalized[key] = []
        elif not isinstance(value, list):
            raise ValidationError(f"Project data field '{key}' must be a list")
    return normalized


def parse_project_data(raw: Optional[str]) -> Optional[dict[str, Any]]:
    """Parse the ``data`` multipart field; blank means "use the defaults"."""
    if raw is None or not raw.strip():
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        raise ValidationError("Project data must be valid JSON")
    return normalize_project_data(parsed)


def data_from_template(template: dict[str, Any]) -> dict[str, Any]:
    data = default_project_data()
    for key in TEMPLATE_KEYS:
        value = template.get(key)
        if isinstance(value, list):
            data[key] = copy.deepcopy(value)
    return data
