from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from custodia.core.errors import ValidationError


def read_json_file(path: Path) -> Any:
    resolved = path.expanduser().resolve()
    if not resolved.exists() or not resolved.is_file():
        raise ValidationError(f"JSON file not found: {resolved}")
    try:
        return json.loads(resolved.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValidationError(f"{resolved} is not valid JSON: {exc}") from exc


def read_text_or_json_file(path: Path) -> str:
    """Return the file content; JSON content is normalised to a compact document."""
    resolved = path.expanduser().resolve()
    if not resolved.exists() or not resolved.is_file():
        raise ValidationError(f"File not found: {resolved}")
    text = resolved.read_text(encoding="utf-8")
    try:
        return json.dumps(json.loads(text), sort_keys=True)
    except json.JSONDecodeError:
        return text.strip()
