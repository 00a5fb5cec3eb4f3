from __future__ import annotations

from typing import TYPE_CHECKING, List, Sequence

import numpy as np

from ..anchors import AnchorSet
from ..errors import ShapeMismatchError
from ..layers import grid_shape, grid_stride, sort_layers
from ..types import Candidate, LayerView, NetworkInfo

if TYPE_CHECKING:
    from ..postprocess import YoloPostConfig


def decode_grid_layer(
    layer: LayerView,
    anchor_wh: np.ndarray,
    anchor_set: AnchorSet,
    num_classes: int,
    network_info: NetworkInfo,
) -> List[Candidate]:
    """
    Decode one CHW detection head laid out as
    (num_anchors * (5 + num_classes), grid_h, grid_w).

    Per anchor the channels are [tx, ty, tw, th, objectness, class scores...].
    Offsets are used as-is; any sigmoid is expected to be part of the model.

    Args:
        anchor_wh: (num_anchors, 2) anchor sizes, in grid units when the anchor
            set scales by stride, in pixels otherwise
    """

    channels, grid_h, grid_w = grid_shape(layer)
    num_anchors = anchor_wh.shape[0]
    expected = num_anchors * (5 + num_classes)
    if channels != expected:
        raise ShapeMismatchError(
            f"Layer '{layer.name}' has {channels} channels, expected {num_anchors} anchors x "
            f"(5 + {num_classes}) = {expected}."
        )
    stride = grid_stride(network_info, grid_w, grid_h)

    wh = anchor_wh.astype(np.float64)
    if anchor_set.scale_anchors_by_stride:
        wh = wh * stride

    data = layer.flat().astype(np.float64).reshape(num_anchors, 5 + num_classes, grid_h, grid_w)
    # (A, ch, H, W) -> (H, W, A, ch) so the output order is row, column, anchor.
    data = np.transpose(data, (2, 3, 0, 1))

    tx, ty, tw, th, objectness = (data[..., k] for k in range(5))
    class_scores = data[..., 5:]

    xs = np.arange(grid_w, dtype=np.float64)[None, :, None]
    ys = np.arange(grid_h, dtype=np.float64)[:, None, None]
    pw = wh[:, 0][None, None, :]
    ph = wh[:, 1][None, None, :]

    cx = (xs + tx) * stride
    cy = (ys + ty) * stride
    with np.errstate(over="ignore", invalid="ignore"):
        if anchor_set.wh_transform == "exp":
            bw = pw * np.exp(tw)
            bh = ph * np.exp(th)
        else:
            bw = pw * tw
            bh = ph * th

        max_prob = class_scores.max(axis=-1)
        class_id = class_scores.argmax(axis=-1)
        confidence = objectness * max_prob

        net_w = float(network_info.width)
        net_h = float(network_info.height)
        x0 = cx - bw / 2
        y0 = cy - bh / 2
        x1 = np.clip(x0 + bw, 0.0, net_w)
        y1 = np.clip(y0 + bh, 0.0, net_h)
        x0 = np.clip(x0, 0.0, net_w)
        y0 = np.clip(y0, 0.0, net_h)
        width = np.clip(x1 - x0, 0.0, net_w)
        height = np.clip(y1 - y0, 0.0, net_h)

        # No strictly positive class score means no class was picked.
        keep = (max_prob > 0) & (confidence >= 0) & (width >= 1) & (height >= 1)

    candidates = [
        Candidate(
            class_id=int(c),
            left=float(x),
            top=float(y),
            width=float(w),
            height=float(h),
            confidence=float(p),
        )
        for c, x, y, w, h, p in zip(
            class_id[keep], x0[keep], y0[keep], width[keep], height[keep], confidence[keep]
        )
    ]
    return candidates


def decode_grid_anchor(
    layers: Sequence[LayerView],
    network_info: NetworkInfo,
    cfg: YoloPostConfig,
) -> List[Candidate]:
    """
    Grid-anchor decoding for single-head (no masks) and multi-scale heads.

    Single-head anchor sets decode the first layer only. Multi-scale sets sort
    the layers coarsest grid first and pair them with the mask groups in order;
    the counts must match.
    """

    anchor_set = cfg.anchor_set
    if not layers:
        raise ShapeMismatchError("Could not find an output layer for grid-anchor decoding.")

    if anchor_set.masks:
        ordered = sort_layers(layers)
        if len(ordered) != len(anchor_set.masks):
            raise ShapeMismatchError(
                f"Output layer count {len(ordered)} does not match anchor mask count {len(anchor_set.masks)}."
            )
    else:
        ordered = [layers[0]]

    # Validate every head before decoding any of them.
    for layer in ordered:
        _, grid_h, grid_w = grid_shape(layer)
        grid_stride(network_info, grid_w, grid_h)

    candidates: List[Candidate] = []
    for layer, group in zip(ordered, anchor_set.mask_groups):
        anchor_wh = np.array([anchor_set.anchor_wh(i) for i in group], dtype=np.float64)
        candidates.extend(decode_grid_layer(layer, anchor_wh, anchor_set, cfg.num_classes, network_info))
    return candidates
