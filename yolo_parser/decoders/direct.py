from __future__ import annotations

from typing import TYPE_CHECKING, List, Sequence

import numpy as np

from ..errors import ShapeMismatchError
from ..nms import NMSConfig, cluster_nms
from ..types import Candidate, LayerView, NetworkInfo

if TYPE_CHECKING:
    from ..postprocess import YoloPostConfig

# cx, cy, w, h, confidence, class_id
TUPLE_SIZE = 6


def decode_direct(
    layers: Sequence[LayerView],
    network_info: NetworkInfo,
    cfg: YoloPostConfig,
) -> List[Candidate]:
    """
    Decode a packed [count, (cx, cy, w, h, conf, class_id) * N] float buffer.

    Tuples at or below `cfg.direct_conf_threshold` are dropped, survivors go
    through class-wise NMS, and the kept boxes are returned with negative
    left/top clamped to zero.
    """

    if not layers:
        raise ShapeMismatchError("Could not find an output layer for direct-regression decoding.")

    # Confidences are compared at float32 precision.
    buf = layers[0].flat().astype(np.float32, copy=False)
    if buf.size == 0:
        raise ShapeMismatchError(f"Layer '{layers[0].name}' is empty; expected a detection count.")

    available = (buf.size - 1) // TUPLE_SIZE
    raw_count = buf[0]
    count = int(raw_count) if np.isfinite(raw_count) and raw_count > 0 else 0
    count = min(count, cfg.direct_max_count, available)

    tuples = buf[1 : 1 + count * TUPLE_SIZE].reshape(count, TUPLE_SIZE)
    finite = np.isfinite(tuples).all(axis=1)
    tuples = tuples[finite]
    tuples = tuples[tuples[:, 4] > np.float32(cfg.direct_conf_threshold)].astype(np.float64)

    candidates = [
        Candidate.from_cxcywh(cx, cy, w, h, confidence=conf, class_id=int(cls))
        for cx, cy, w, h, conf, cls in tuples
    ]
    nms_cfg = NMSConfig(iou_threshold=cfg.direct_iou_threshold, conf_threshold=cfg.direct_conf_threshold)
    kept = cluster_nms(candidates, nms_cfg)

    for det in kept:
        det.left = max(0.0, det.left)
        det.top = max(0.0, det.top)

    return kept
