from __future__ import annotations

from typing import TYPE_CHECKING, List, Sequence

import numpy as np

from ..errors import ShapeMismatchError
from ..types import Candidate, LayerView, NetworkInfo

if TYPE_CHECKING:
    from ..postprocess import YoloPostConfig

NUM_OUTPUT_BUFFERS = 4
MAX_SCORE = 1.001


def decode_proposals(
    layers: Sequence[LayerView],
    network_info: NetworkInfo,
    cfg: YoloPostConfig,
) -> List[Candidate]:
    """
    Pass through proposals from a region-based detector.

    Expects four buffers in order: keep count (int32), boxes (x1, y1, x2, y2),
    scores, class ids. Malformed entries are dropped; scores are not thresholded.
    """

    if len(layers) != NUM_OUTPUT_BUFFERS:
        raise ShapeMismatchError(
            f"Mismatch in the number of output buffers. Expected {NUM_OUTPUT_BUFFERS}, got {len(layers)}."
        )

    keep_layer, box_layer, score_layer, class_layer = layers
    keep_buf = keep_layer.flat()
    if keep_buf.size == 0:
        raise ShapeMismatchError(f"Layer '{keep_layer.name}' is empty; expected a keep count.")

    boxes = box_layer.flat().astype(np.float64)
    scores = score_layer.flat().astype(np.float64)
    class_ids = class_layer.flat().astype(np.float64)

    raw_keep = keep_buf[0]
    if not np.isfinite(raw_keep):
        raise ShapeMismatchError(f"Layer '{keep_layer.name}' holds a non-finite keep count.")
    keep_count = max(int(raw_keep), 0)
    n = min(keep_count, cfg.proposal_top_k, boxes.size // 4, scores.size, class_ids.size)

    loc = boxes[: n * 4].reshape(n, 4)
    conf = scores[:n]
    cls = class_ids[:n]
    x1, y1, x2, y2 = loc[:, 0], loc[:, 1], loc[:, 2], loc[:, 3]
    net_w = float(network_info.width)
    net_h = float(network_info.height)

    valid = (
        np.isfinite(loc).all(axis=1)
        & np.isfinite(conf)
        & np.isfinite(cls)
        & (conf <= MAX_SCORE)
        & (loc >= 0).all(axis=1)
        & (x1 <= net_w)
        & (x2 <= net_w)
        & (y1 <= net_h)
        & (y2 <= net_h)
        & (x2 >= x1)
        & (y2 >= y1)
        & ((x2 - x1) <= net_w)
        & ((y2 - y1) <= net_h)
    )

    candidates = [
        Candidate(
            class_id=int(c),
            left=float(bx1),
            top=float(by1),
            width=float(bx2 - bx1),
            height=float(by2 - by1),
            confidence=float(p),
        )
        for (bx1, by1, bx2, by2), p, c in zip(loc[valid], conf[valid], cls[valid])
    ]
    return candidates
