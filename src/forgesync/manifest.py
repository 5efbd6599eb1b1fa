"""Install manifest — what each module deployed into a destination.

A ``.manifest`` file in the destination directory maps module names to the
agent or skill names they installed last time, so that names dropped from a
module can be cleaned up on the next run::

    forge-council:
      - Architect
      - SecurityArchitect
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger("forgesync.manifest")

MANIFEST_FILE = ".manifest"
MODULE_FILE = "module.yaml"


def _load(path: Path) -> dict[str, list[str]]:
    if not path.is_file():
        return {}
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (yaml.YAMLError, OSError) as exc:
        logger.warning("Ignoring unreadable manifest %s: %s", path, exc)
        return {}
    if not isinstance(raw, dict):
        return {}
    return {
        str(module): [str(name) for name in names]
        for module, names in raw.items()
        if isinstance(names, list)
    }


def read(dst_dir: Path, module_name: str) -> list[str]:
    """Names recorded for ``module_name`` in ``dst_dir``; empty when unknown."""
    return _load(dst_dir / MANIFEST_FILE).get(module_name, [])


def update(dst_dir: Path, module_name: str, entries: list[str]) -> None:
    """Record ``entries`` as what ``module_name`` now owns in ``dst_dir``.

    An empty ``entries`` drops the module; an empty manifest is deleted.

    Raises:
        OSError: If the manifest cannot be written.
    """
    path = dst_dir / MANIFEST_FILE
    data = _load(path)

    if entries:
        data[module_name] = list(entries)
    else:
        data.pop(module_name, None)

    if not data:
        path.unlink(missing_ok=True)
        return

    dst_dir.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data, default_flow_style=False, sort_keys=True), encoding="utf-8")


def module_name(source_dir: Path) -> Optional[str]:
    """Module name from ``module.yaml`` beside ``source_dir`` (in its parent)."""
    path = source_dir.resolve().parent / MODULE_FILE
    if not path.is_file():
        return None
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (yaml.YAMLError, OSError) as exc:
        logger.warning("Ignoring unreadable %s: %s", path, exc)
        return None
    if not isinstance(raw, dict) or not raw.get("name"):
        return None
    return str(raw["name"]).strip() or None
