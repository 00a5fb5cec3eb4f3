from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List

import numpy as np
import structlog

from yolo_parser import (
    DecodeError,
    LayerView,
    NetworkInfo,
    YoloPostprocessor,
    layer_from_array,
    load_class_names,
    load_parser_config,
)
from yolo_parser.logging_config import configure_logging

logger = structlog.get_logger(__name__)


def _load_layers(paths: List[str]) -> List[LayerView]:
    """
    Load output layers from one .npz (arrays in stored order) or several .npy files.
    """

    layers: List[LayerView] = []
    for raw in paths:
        path = Path(raw)
        if not path.exists():
            raise FileNotFoundError(f"Layer dump not found: {path}")
        if path.suffix == ".npz":
            with np.load(path) as archive:
                for name in archive.files:
                    layers.append(layer_from_array(name, archive[name]))
        elif path.suffix == ".npy":
            layers.append(layer_from_array(path.stem, np.load(path)))
        else:
            raise ValueError(f"Unsupported dump format '{path.suffix}' (expected .npz or .npy)")
    return layers


def main() -> int:
    parser = argparse.ArgumentParser(description="Decode saved detector output layers and print detections as JSON lines.")
    parser.add_argument("layers", nargs="+", help="Layer dumps: one .npz or several .npy files, in output order.")
    parser.add_argument("--config", required=True, help="Path to a parser config JSON.")
    parser.add_argument("--width", type=int, required=True, help="Network input width.")
    parser.add_argument("--height", type=int, required=True, help="Network input height.")
    parser.add_argument("--labels", default=None, help="Optional labels file for class names.")
    parser.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--log-json", action="store_true", help="Emit log events as JSON on stderr.")
    args = parser.parse_args()

    if args.width < 1 or args.height < 1:
        raise ValueError("--width and --height must be >= 1")

    configure_logging(args.log_level, json_output=args.log_json)

    cfg = load_parser_config(Path(args.config))
    layers = _load_layers(args.layers)
    names = load_class_names(args.labels) if args.labels else {}

    post = YoloPostprocessor(cfg.post)
    try:
        detections = post.process(layers, NetworkInfo(width=args.width, height=args.height), cfg.params)
    except DecodeError as exc:
        print(f"decode failed: {exc}", file=sys.stderr)
        return 1

    for det in detections:
        record = {
            "class_id": det.class_id,
            "label": names.get(det.class_id, str(det.class_id)),
            "left": round(det.left, 2),
            "top": round(det.top, 2),
            "width": round(det.width, 2),
            "height": round(det.height, 2),
            "confidence": round(det.confidence, 4),
        }
        print(json.dumps(record))

    logger.info("parsed", layers=len(layers), detections=len(detections))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
