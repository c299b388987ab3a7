from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Any, Dict, List

import numpy as np
import tensorflow as tf
import yaml

from experiments.exp_utils import ensure_dir, print_metrics, print_separator, save_json, save_npz
from linear_kf.errors import InvalidObservationError, SingularInnovationCovarianceError
from linear_kf.filters import KalmanFilter

DEFAULT_CONFIG_PATH = Path(__file__).with_name("kalman_config.yaml")

logger = logging.getLogger(__name__)


def generate_measurements(
    rate_hz: float,
    duration_s: float,
    initial_position: float = 0.0,
    initial_velocity: float = 1.0,
    noise: float = 0.1,
    seed: int = 42,
) -> Dict[str, np.ndarray]:
    """Position of a body whose velocity is v0 + sin(2 pi t), plus U(-noise, noise)."""
    if rate_hz <= 0 or duration_s <= 0:
        raise ValueError("rate_hz and duration_s must be positive")
    num = int(rate_hz * duration_s)
    dt = 1.0 / rate_hz
    t = np.arange(num, dtype=np.float64) * dt
    velocity = initial_velocity + np.sin(2.0 * np.pi * t)
    position = initial_position + np.cumsum(velocity * dt)

    rng = tf.random.Generator.from_seed(seed)
    jitter = rng.uniform([num], minval=-noise, maxval=noise, dtype=tf.float64).numpy() if noise > 0 else np.zeros(num)
    return {"t": t, "truth": position, "measurements": position + jitter}


def build_filter(filter_cfg: Dict[str, Any]) -> KalmanFilter:
    return KalmanFilter(
        x=filter_cfg.get("x0", [[0.0], [0.0]]),
        P=filter_cfg.get("P0", [[1.0, 0.0], [0.0, 1.0]]),
        F=filter_cfg.get("F", [[1.0, 1.0], [0.0, 1.0]]),
        Q=filter_cfg.get("Q", [[1e-4, 0.0], [0.0, 1e-4]]),
        H=filter_cfg.get("H", [[1.0, 0.0]]),
        R=filter_cfg.get("R", [[0.01]]),
        joseph=bool(filter_cfg.get("joseph", True)),
    )


def run_demo(cfg: Dict[str, Any]) -> Dict[str, Any]:
    exp_cfg = cfg.get("experiment", {})
    source_cfg = cfg.get("source", {})
    seed = int(exp_cfg.get("seed", 42))

    data = generate_measurements(
        rate_hz=float(source_cfg.get("rate_hz", 60.0)),
        duration_s=float(source_cfg.get("duration_s", 5.0)),
        initial_position=float(source_cfg.get("initial_position", 0.0)),
        initial_velocity=float(source_cfg.get("initial_velocity", 1.0)),
        noise=float(source_cfg.get("noise", 0.1)),
        seed=seed,
    )
    kf = build_filter(cfg.get("filter", {}))

    predictions: List[float] = []
    upper: List[float] = []
    lower: List[float] = []
    rejected = 0
    for step, measurement in enumerate(data["measurements"]):
        kf.predict()
        position = float(kf.get_state()[0, 0])
        sigma = float(np.sqrt(kf.get_covariance()[0, 0]))
        predictions.append(position)
        upper.append(position + 3.0 * sigma)
        lower.append(position - 3.0 * sigma)
        logger.debug("step %d: sigma=%.6f", step, sigma)

        try:
            kf.update([[measurement]])
        except (SingularInnovationCovarianceError, InvalidObservationError) as exc:
            rejected += 1
            logger.warning("step %d: skipping measurement %.4f: %s", step, measurement, exc)

    data.update(
        predictions=np.asarray(predictions),
        upper=np.asarray(upper),
        lower=np.asarray(lower),
        rejected=rejected,
    )
    return data


def summarize(result: Dict[str, Any]) -> Dict[str, Any]:
    truth = result["truth"]
    pred = result["predictions"]
    inside = (truth >= result["lower"]) & (truth <= result["upper"])
    return {
        "num_measurements": int(len(truth)),
        "rejected": int(result["rejected"]),
        "rmse_pred": float(np.sqrt(np.mean((pred - truth) ** 2))),
        "rmse_meas": float(np.sqrt(np.mean((result["measurements"] - truth) ** 2))),
        "coverage_3sigma": float(np.mean(inside)),
    }


def _plot_results(path: Path, result: Dict[str, Any], show: bool = False) -> None:
    import matplotlib.pyplot as plt

    steps = np.arange(len(result["measurements"]))
    fig, ax = plt.subplots(figsize=(16, 12))
    ax.plot(steps, result["measurements"], color="red", label="Measurements")
    ax.plot(steps, result["predictions"], color="blue", label="Predictions")
    ax.plot(steps, result["upper"], color="green", label="Upper 3-Sigma Bound")
    ax.plot(steps, result["lower"], color="green", linestyle="--", label="Lower 3-Sigma Bound")
    ax.set_title("Kalman Filter Results")
    ax.set_xlabel("step")
    ax.set_ylabel("position")
    ax.grid(True, linestyle=":")
    ax.legend(framealpha=0.8, edgecolor="black")
    fig.tight_layout()
    fig.savefig(path, dpi=100)
    if show:
        plt.show()
    plt.close(fig)


def _deep_set(cfg: Dict[str, Any], key: str, value: Any) -> None:
    parts = [part for part in key.split(".") if part]
    if not parts:
        raise ValueError("override key cannot be empty")
    node = cfg
    for part in parts[:-1]:
        if part not in node or not isinstance(node[part], dict):
            node[part] = {}
        node = node[part]
    node[parts[-1]] = value


def _apply_overrides(cfg: Dict[str, Any], overrides: List[str]) -> Dict[str, Any]:
    for item in overrides:
        if "=" not in item:
            raise ValueError(f"override must be key=value, got '{item}'")
        key, raw_value = item.split("=", 1)
        value = yaml.safe_load(raw_value)
        _deep_set(cfg, key.strip(), value)
    return cfg


def _load_config(path: Path, overrides: List[str]) -> Dict[str, Any]:
    raw = path.read_text(encoding="utf-8")
    cfg = yaml.safe_load(raw) or {}
    if not isinstance(cfg, dict):
        raise ValueError("config root must be a mapping")
    return _apply_overrides(cfg, overrides)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Kalman filter demo on a sinusoidal-velocity track.")
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to YAML config (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        action="append",
        default=[],
        help="Override config values: key=value (dot-separated keys).",
    )
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    cfg = _load_config(args.config, args.overrides)

    exp_cfg = cfg.get("experiment", {})
    logging.basicConfig(
        level=str(exp_cfg.get("log_level", "INFO")).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    out_root = Path(exp_cfg.get("output_root", "results/kalman_filter"))
    ensure_dir(out_root)

    result = run_demo(cfg)
    metrics = summarize(result)

    _plot_results(out_root / "kalman_filter.png", result, show=bool(exp_cfg.get("show", False)))
    save_npz(
        out_root / "results.npz",
        t=result["t"],
        truth=result["truth"],
        measurements=result["measurements"],
        predictions=result["predictions"],
        upper=result["upper"],
        lower=result["lower"],
    )
    save_json(out_root / "summary.json", {"config": cfg, "metrics": metrics})

    print_separator("kalman_filter summary")
    print_metrics(str(out_root), metrics)


if __name__ == "__main__":
    main()
