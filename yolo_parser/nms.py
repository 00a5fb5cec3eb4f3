from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from .types import Candidate, Detection


@dataclass
class NMSConfig:
    iou_threshold: float = 0.5
    conf_threshold: float = 0.0


def iou(lbox: Sequence[float], rbox: Sequence[float]) -> float:
    """
    IoU of two boxes in center form (cx, cy, w, h).
    """

    left = max(lbox[0] - lbox[2] / 2, rbox[0] - rbox[2] / 2)
    right = min(lbox[0] + lbox[2] / 2, rbox[0] + rbox[2] / 2)
    top = max(lbox[1] - lbox[3] / 2, rbox[1] - rbox[3] / 2)
    bottom = min(lbox[1] + lbox[3] / 2, rbox[1] + rbox[3] / 2)

    # Inverted span means no overlap; a negative product must not leak into the union.
    if top > bottom or left > right:
        return 0.0

    inter = (right - left) * (bottom - top)
    union = lbox[2] * lbox[3] + rbox[2] * rbox[3] - inter
    if union <= 0:
        return 0.0
    return float(inter / union)


def iou_matrix(box: np.ndarray, boxes: np.ndarray) -> np.ndarray:
    """
    IoU of one center-form box against (N, 4) center-form boxes.
    """

    if boxes.size == 0:
        return np.empty((0,), dtype=np.float64)

    left = np.maximum(box[0] - box[2] / 2, boxes[:, 0] - boxes[:, 2] / 2)
    right = np.minimum(box[0] + box[2] / 2, boxes[:, 0] + boxes[:, 2] / 2)
    top = np.maximum(box[1] - box[3] / 2, boxes[:, 1] - boxes[:, 3] / 2)
    bottom = np.minimum(box[1] + box[3] / 2, boxes[:, 1] + boxes[:, 3] / 2)

    overlap = (left <= right) & (top <= bottom)
    inter = np.where(overlap, (right - left) * (bottom - top), 0.0)
    union = box[2] * box[3] + boxes[:, 2] * boxes[:, 3] - inter
    # Zero-area pairs have no defined overlap and never suppress each other.
    out = np.zeros_like(union, dtype=np.float64)
    np.divide(inter, union, out=out, where=union > 0)
    return out


def nms(boxes: np.ndarray, scores: np.ndarray, iou_threshold: float) -> np.ndarray:
    """
    Greedy NMS for a single class. Expects boxes shape (N,4) in cxcywh and
    scores shape (N,). Returns indices of boxes to keep, best first.

    The sort is stable: equal scores keep their input order.
    """

    if boxes.size == 0:
        return np.empty((0,), dtype=np.int64)

    order = np.argsort(-scores, kind="stable")
    keep = []

    while order.size > 0:
        i = order[0]
        keep.append(i)

        overlaps = iou_matrix(boxes[i], boxes[order[1:]])
        inds = np.where(overlaps <= iou_threshold)[0]
        order = order[inds + 1]

    return np.array(keep, dtype=np.int64)


def cluster_nms(candidates: Sequence[Candidate], cfg: NMSConfig) -> List[Detection]:
    """
    Class-wise greedy NMS over a flat candidate list.

    Candidates at or below `cfg.conf_threshold` are dropped first. Survivors are
    grouped by class id, each group is suppressed independently and the
    groups are concatenated in ascending class-id order.
    """

    kept_candidates = [c for c in candidates if c.confidence > cfg.conf_threshold]
    if not kept_candidates:
        return []

    boxes = np.array([c.as_cxcywh() for c in kept_candidates], dtype=np.float64)
    scores = np.array([c.confidence for c in kept_candidates], dtype=np.float64)
    class_ids = np.array([c.class_id for c in kept_candidates], dtype=np.int64)

    result: List[Detection] = []
    for cls in np.unique(class_ids):
        idx = np.where(class_ids == cls)[0]
        keep_local = nms(boxes[idx], scores[idx], cfg.iou_threshold)
        result.extend(kept_candidates[i] for i in idx[keep_local])
    return result
