"""
Load the bulletin board layout (CSS selectors, column map) from YAML with
optional env overrides.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from notice_crawler.schemas.models import BoardLayout

logger = logging.getLogger(__name__)


def load_board_layout(path: Optional[Path]) -> BoardLayout:
    if path is None:
        return BoardLayout()
    if not path.exists():
        logger.warning("Board layout config not found at %s; using defaults", path)
        return BoardLayout()
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    return BoardLayout.model_validate(_expand_env(data.get("board", data)))


def _expand_env(data: Dict[str, Any]) -> Dict[str, Any]:
    def replace(value: Any) -> Any:
        if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
            env_key = value[2:-1]
            return os.getenv(env_key, "")
        if isinstance(value, dict):
            return {k: replace(v) for k, v in value.items()}
        if isinstance(value, list):
            return [replace(item) for item in value]
        return value

    return replace(data)  # type: ignore[return-value]
