from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml

DEFAULT_CONFIG = "sqlblocks.yml"


@dataclass
class RuntimeConfig:
    default_adapter: str = "postgres"
    sql_dir: str = "sql"
    out_dir: str = "build/blocks"
    include: List[str] = field(default_factory=lambda: ["*.sql", "*.json"])
    exclude: List[str] = field(default_factory=list)
    log_level: str = "info"
    output_format: str = "text"


def load_config(path: Optional[Path]) -> RuntimeConfig:
    cfg = RuntimeConfig()
    if path is None:
        default = Path(DEFAULT_CONFIG)
        if default.exists():
            path = default
    if path and path.exists():
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        for k, v in data.items():
            if hasattr(cfg, k):
                setattr(cfg, k, v)
    # a single glob is accepted where a list is expected
    for key in ("include", "exclude"):
        value = getattr(cfg, key)
        if isinstance(value, str):
            setattr(cfg, key, [value])
    return cfg
