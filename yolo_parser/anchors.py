from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple


@dataclass(frozen=True)
class AnchorSet:
    """
    Anchor boxes and per-layer anchor masks for a grid-anchor detector.

    - anchors: flat (w0, h0, w1, h1, ...) pairs
    - masks: one group of anchor indices per output layer; empty means a
      single layer that uses every anchor
    - wh_transform: "exp" (w = pw * exp(tw)) or "linear" (w = pw * tw)
    - scale_anchors_by_stride: anchors are in grid units and get multiplied by
      the layer stride
    """

    anchors: Tuple[float, ...]
    masks: Tuple[Tuple[int, ...], ...] = ()
    wh_transform: str = "exp"
    scale_anchors_by_stride: bool = False

    def __post_init__(self) -> None:
        if len(self.anchors) == 0 or len(self.anchors) % 2 != 0:
            raise ValueError("anchors must hold (w, h) pairs")
        if self.wh_transform not in ("exp", "linear"):
            raise ValueError(f"wh_transform must be 'exp' or 'linear', got {self.wh_transform!r}")
        for group in self.masks:
            if not group:
                raise ValueError("mask groups must not be empty")
            for idx in group:
                if idx < 0 or idx >= self.num_anchors:
                    raise ValueError(f"mask index {idx} out of range for {self.num_anchors} anchors")

    @property
    def num_anchors(self) -> int:
        return len(self.anchors) // 2

    @property
    def mask_groups(self) -> Tuple[Tuple[int, ...], ...]:
        if self.masks:
            return self.masks
        return (tuple(range(self.num_anchors)),)

    def anchor_wh(self, index: int) -> Tuple[float, float]:
        return self.anchors[index * 2], self.anchors[index * 2 + 1]


# yolov2.cfg / yolov2-tiny.cfg (grid units)
YOLOV2 = AnchorSet(
    anchors=(0.57273, 0.677385, 1.87446, 2.06253, 3.33843, 5.47434, 7.88282, 3.52778, 9.77052, 9.16828),
    wh_transform="exp",
    scale_anchors_by_stride=True,
)
YOLOV2_TINY = YOLOV2

# yolov3.cfg (pixels)
YOLOV3 = AnchorSet(
    anchors=(10.0, 13.0, 16.0, 30.0, 33.0, 23.0, 30.0, 61.0, 62.0, 45.0, 59.0, 119.0, 116.0, 90.0, 156.0, 198.0, 373.0, 326.0),
    masks=((6, 7, 8), (3, 4, 5), (0, 1, 2)),
    wh_transform="linear",
)

# yolov3-tiny.cfg; the second head uses (1, 2, 3) to match the exported model.
YOLOV3_TINY = AnchorSet(
    anchors=(10.0, 14.0, 23.0, 27.0, 37.0, 58.0, 81.0, 82.0, 135.0, 169.0, 344.0, 319.0),
    masks=((3, 4, 5), (1, 2, 3)),
    wh_transform="linear",
)

PRESETS: Dict[str, AnchorSet] = {
    "yolov2": YOLOV2,
    "yolov2-tiny": YOLOV2_TINY,
    "yolov3": YOLOV3,
    "yolov3-tiny": YOLOV3_TINY,
}


def get_anchor_set(name: str) -> AnchorSet:
    key = name.strip().lower()
    if key not in PRESETS:
        raise ValueError(f"Unknown anchor preset {name!r}. Known: {sorted(PRESETS)}")
    return PRESETS[key]
