from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from .adapters import PAYLOAD_KEYS, get_adapter
from .config import RuntimeConfig

logger = logging.getLogger(__name__)

OUTPUT_SUFFIX = ".blocks.json"


@dataclass
class TransformRequest:
    path: Path
    adapter: str
    object_type: Optional[str] = None


@dataclass
class ExtractRequest:
    sql_dir: Path
    out_dir: Path
    adapter: str
    include: Optional[List[str]] = None
    exclude: Optional[List[str]] = None
    fail_on_error: bool = False


def _match_any(p: Path, patterns: Optional[List[str]]) -> bool:
    if not patterns:
        return True
    return any(p.match(g) for g in patterns)


def _is_payload(data: Any) -> bool:
    return isinstance(data, dict) and any(k in data for k in PAYLOAD_KEYS) and "PLpgSQL_function" not in data


class Engine:
    def __init__(self, config: RuntimeConfig):
        self.config = config

    def transform_file(self, path: Path, adapter_name: str, object_type: Optional[str] = None) -> Dict[str, Any]:
        """Workspace dict for one ``.sql`` source or ``.json`` provider payload.

        A ``.json`` file holds either a full payload (see ``PAYLOAD_KEYS``) or a bare
        PL/pgSQL tree, in which case the file stem is used as the routine name.
        """
        adapter = get_adapter(adapter_name)
        path = Path(path)
        text = path.read_text(encoding="utf-8")
        if path.suffix.lower() != ".json":
            return adapter.transform_source(text, object_type=object_type, name=path.stem)

        data = json.loads(text)
        if _is_payload(data):
            payload = dict(data)
            payload.setdefault("name", path.stem)
            if object_type:
                payload["object_type"] = object_type
            return adapter.transform_payload(payload)
        return adapter.transform_payload({
            "object_type": object_type,
            "name": path.stem,
            "ast_json": data,
        })

    def run_transform(self, req: TransformRequest) -> Dict[str, Any]:
        return self.transform_file(req.path, req.adapter, req.object_type)

    def run_extract(self, req: ExtractRequest) -> Dict[str, Any]:
        """Transform every matching file under ``sql_dir`` into ``out_dir``."""
        get_adapter(req.adapter)

        includes = list(req.include or self.config.include or [])
        excludes = list(req.exclude or self.config.exclude or [])

        sql_root = Path(req.sql_dir)
        files = [
            p for p in sorted(sql_root.rglob("*"))
            if p.is_file() and _match_any(p, includes) and not (excludes and _match_any(p, excludes))
        ]

        out_dir = Path(req.out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)

        rows: List[List[str]] = []
        errors = 0
        for src in files:
            try:
                workspace = self.transform_file(src, req.adapter)
                target = out_dir / f"{src.stem}{OUTPUT_SUFFIX}"
                target.write_text(json.dumps(workspace, indent=2, ensure_ascii=False), encoding="utf-8")
                blocks = workspace.get("blocks", {}).get("blocks", [])
                top = blocks[0]["type"] if blocks else "-"
                rows.append([str(src), str(target), top])
            except (OSError, ValueError) as e:
                # JSONDecodeError and UnicodeDecodeError are ValueErrors
                errors += 1
                logger.warning("failed to process %s: %s", src, e)

        return {
            "columns": ["input", "workspace_json", "definition"],
            "rows": rows,
            "errors": errors,
            "exit_code": 1 if (errors and req.fail_on_error) else 0,
        }
