"""Config file I/O for JSON, YAML and TOML.

The format is inferred from the file extension:
  .json        → JSON
  .yaml / .yml → YAML  (pyyaml)
  .toml        → TOML  (read: stdlib tomllib; write: tomli-w)
"""
from __future__ import annotations

import json
import tomllib
from pathlib import Path
from typing import Any

import tomli_w
import yaml

import services.util as u

_YAML_EXTS = {".yaml", ".yml"}
_TOML_EXTS = {".toml"}

_CONFIG_NAMES = ["config.json", "config.yaml", "config.yml", "config.toml"]


def find_config(directory: Path | None = None) -> Path | None:
    """Return the first config file found in *directory* (default: data path)."""
    directory = Path(u.get_data_path()) if directory is None else directory
    for name in _CONFIG_NAMES:
        p = directory / name
        if p.is_file():
            return p
    return None


def load_config(path: Path) -> dict[str, Any]:
    ext = path.suffix.lower()
    if ext in _YAML_EXTS:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    if ext in _TOML_EXTS:
        with open(path, "rb") as f:
            return tomllib.load(f)
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def save_config(data: dict[str, Any], path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    ext = path.suffix.lower()
    if ext in _YAML_EXTS:
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(data, f, allow_unicode=True, sort_keys=False, default_flow_style=False)
        return
    if ext in _TOML_EXTS:
        with open(path, "wb") as f:
            tomli_w.dump(data, f)
        return
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
