from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Tuple

from .anchors import AnchorSet, get_anchor_set
from .decoders import DecoderFamily
from .postprocess import ClusterMode, YoloPostConfig
from .types import DetectionParams


@dataclass(frozen=True)
class ParserConfig:
    post: YoloPostConfig
    params: DetectionParams


_ALLOWED_KEYS = {
    "schema_version",
    "family",
    "num_classes",
    "anchor_preset",
    "anchors",
    "masks",
    "wh_transform",
    "scale_anchors_by_stride",
    "cluster_mode",
    "iou_threshold",
    "top_k",
    "num_classes_configured",
    "precluster_threshold",
    "postcluster_threshold",
    "direct_conf_threshold",
    "direct_iou_threshold",
    "direct_max_count",
    "proposal_top_k",
}


def _require_int(payload: Dict[str, Any], key: str) -> int:
    if key not in payload:
        raise ValueError(f"Missing required key: {key}")
    return _as_int(payload[key], key)


def _as_int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def _as_number(value: Any, key: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _thresholds(value: Any, key: str, num_classes: int) -> Tuple[float, ...]:
    # A single number applies to every configured class.
    if isinstance(value, list):
        return tuple(_as_number(v, key) for v in value)
    return (_as_number(value, key),) * num_classes


def _parse_enum(enum_cls, value: Any, key: str):
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    try:
        return enum_cls(value.strip().lower())
    except ValueError as exc:
        choices = [m.value for m in enum_cls]
        raise ValueError(f"{key} must be one of {choices}, got {value!r}") from exc


def _parse_anchor_set(payload: Dict[str, Any]) -> AnchorSet:
    if "anchor_preset" in payload and "anchors" in payload:
        raise ValueError("Use either anchor_preset or anchors, not both")

    if "anchors" not in payload:
        preset = payload.get("anchor_preset", "yolov2")
        if not isinstance(preset, str):
            raise ValueError("anchor_preset must be a string")
        return get_anchor_set(preset)

    anchors = payload["anchors"]
    if not isinstance(anchors, list):
        raise ValueError("anchors must be a list of numbers")
    masks = payload.get("masks", [])
    if not isinstance(masks, list) or not all(isinstance(m, list) for m in masks):
        raise ValueError("masks must be a list of index lists")
    wh_transform = payload.get("wh_transform", "exp")
    scale = payload.get("scale_anchors_by_stride", False)
    if not isinstance(scale, bool):
        raise ValueError("scale_anchors_by_stride must be a boolean")

    return AnchorSet(
        anchors=tuple(_as_number(a, "anchors") for a in anchors),
        masks=tuple(tuple(_as_int(i, "masks") for i in group) for group in masks),
        wh_transform=wh_transform,
        scale_anchors_by_stride=scale,
    )


def load_parser_config(path: Path) -> ParserConfig:
    """
    Load a JSON parser profile, e.g.

        {
          "schema_version": 1,
          "family": "grid_anchor",
          "anchor_preset": "yolov3",
          "num_classes": 80,
          "precluster_threshold": 0.25
        }
    """

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Parser config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid parser config JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Parser config must be a JSON object")

    unknown = sorted(set(payload.keys()) - _ALLOWED_KEYS)
    if unknown:
        raise ValueError(f"Unknown parser config keys: {unknown}")

    if _require_int(payload, "schema_version") != 1:
        raise ValueError("parser config schema_version must be 1")
    if "family" not in payload:
        raise ValueError("Missing required key: family")

    family = _parse_enum(DecoderFamily, payload["family"], "family")
    num_classes = _as_int(payload.get("num_classes", 80), "num_classes")
    cluster_mode = None
    if "cluster_mode" in payload:
        cluster_mode = _parse_enum(ClusterMode, payload["cluster_mode"], "cluster_mode")

    post = YoloPostConfig(
        family=family,
        num_classes=num_classes,
        anchor_set=_parse_anchor_set(payload),
        cluster_mode=cluster_mode,
        iou_threshold=_as_number(payload.get("iou_threshold", 0.5), "iou_threshold"),
        top_k=_as_int(payload.get("top_k", 0), "top_k"),
        direct_conf_threshold=_as_number(payload.get("direct_conf_threshold", 0.4), "direct_conf_threshold"),
        direct_iou_threshold=_as_number(payload.get("direct_iou_threshold", 0.5), "direct_iou_threshold"),
        direct_max_count=_as_int(payload.get("direct_max_count", 1000), "direct_max_count"),
        proposal_top_k=_as_int(payload.get("proposal_top_k", 200), "proposal_top_k"),
    )

    configured = _as_int(payload.get("num_classes_configured", num_classes), "num_classes_configured")
    if configured < 1:
        raise ValueError("num_classes_configured must be >= 1")
    params = DetectionParams(
        num_classes_configured=configured,
        per_class_precluster_threshold=_thresholds(payload.get("precluster_threshold", 0.0), "precluster_threshold", configured),
        per_class_postcluster_threshold=_thresholds(payload.get("postcluster_threshold", 0.0), "postcluster_threshold", configured),
    )
    return ParserConfig(post=post, params=params)
