from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Dict


DEFAULT_CONFIG: Dict = {
    "version": 1,
    "seed": 13,
    "training": {
        "max_iter": 5000,
        "max_cent": 5,
        "min_cent": 1,
        "step": None,
        "dims": 10,
        "n": None,
        "sigma_min_cells": None,
        "sigma_max_cells": None,
        "max_retries": 10,
        "verbose": True,
    },
}


def _merge(base: Dict, override: Dict) -> Dict:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: str | Path) -> Dict:
    """Read a JSON run configuration and fill in missing keys from the defaults."""
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    try:
        cfg = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(
            f"Config parsing failed for {p}. `condecon-build` expects a JSON file. "
            "Use `condecon-build init-config` to create a starter file."
        ) from exc
    if not isinstance(cfg, dict):
        raise ValueError(f"Config {p} must contain a JSON object")
    unknown = set(cfg.get("training", {})) - set(DEFAULT_CONFIG["training"])
    if unknown:
        raise ValueError(f"Unknown training option(s) in {p}: {sorted(unknown)}")
    return _merge(DEFAULT_CONFIG, cfg)


def write_starter_config(path: str | Path) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(DEFAULT_CONFIG, indent=2), encoding="utf-8")


__all__ = ["DEFAULT_CONFIG", "load_config", "write_starter_config"]
