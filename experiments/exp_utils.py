from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

import numpy as np
import tensorflow as tf


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def save_json(path: Path, payload: Dict[str, Any]) -> None:
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def save_npz(path: Path, **arrays: Any) -> None:
    np.savez_compressed(str(path), **{k: _to_numpy(v) for k, v in arrays.items()})


def _to_numpy(x: Any) -> np.ndarray:
    if isinstance(x, tf.Tensor):
        return x.numpy()
    return np.asarray(x)


def print_separator(title: str, char: str = "=") -> None:
    line = char * 12
    print(f"{line} {title} {line}")


def print_metrics(prefix: str, metrics: Dict[str, Any]) -> None:
    print(f"[metrics] {prefix}")
    for key in sorted(metrics.keys()):
        print(f"  {key}: {metrics[key]}")
