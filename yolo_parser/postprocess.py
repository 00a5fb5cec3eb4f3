from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

import structlog

from .anchors import YOLOV2, AnchorSet
from .decoders import DECODERS, DecoderFamily
from .errors import DecodeError
from .nms import NMSConfig, cluster_nms
from .types import Candidate, Detection, DetectionParams, LayerView, NetworkInfo

logger = structlog.get_logger(__name__)


class ClusterMode(Enum):
    NMS = "nms"
    NONE = "none"


# Direct-regression output is already suppressed and proposals come from a
# two-stage model, so only grid-anchor output is clustered by default.
DEFAULT_CLUSTER_MODE = {
    DecoderFamily.GRID_ANCHOR: ClusterMode.NMS,
    DecoderFamily.DIRECT_REGRESSION: ClusterMode.NONE,
    DecoderFamily.PROPOSAL_PASSTHROUGH: ClusterMode.NONE,
}


@dataclass(frozen=True)
class YoloPostConfig:
    """
    Decoder selection and clustering settings for one network.
    """

    family: DecoderFamily = DecoderFamily.GRID_ANCHOR
    # Class count the network was trained with; wins over the caller's value.
    num_classes: int = 80
    anchor_set: AnchorSet = YOLOV2
    # None picks the family default from DEFAULT_CLUSTER_MODE.
    cluster_mode: Optional[ClusterMode] = None
    iou_threshold: float = 0.5
    # Max detections per call after clustering; 0 keeps everything.
    top_k: int = 0
    direct_conf_threshold: float = 0.4
    direct_iou_threshold: float = 0.5
    direct_max_count: int = 1000
    proposal_top_k: int = 200

    def __post_init__(self) -> None:
        if self.num_classes < 1:
            raise ValueError("num_classes must be >= 1")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be in [0, 1]")
        if not 0.0 <= self.direct_iou_threshold <= 1.0:
            raise ValueError("direct_iou_threshold must be in [0, 1]")
        if self.top_k < 0:
            raise ValueError("top_k must be >= 0")
        if self.direct_max_count < 0:
            raise ValueError("direct_max_count must be >= 0")
        if self.proposal_top_k < 0:
            raise ValueError("proposal_top_k must be >= 0")

    @property
    def effective_cluster_mode(self) -> ClusterMode:
        if self.cluster_mode is not None:
            return self.cluster_mode
        return DEFAULT_CLUSTER_MODE[self.family]


class YoloPostprocessor:
    """
    Turns raw detector output layers into final detections:

    decode -> sanitize -> pre-cluster threshold -> cluster -> post-cluster threshold -> top-K

    Holds no per-call state, so one instance can serve concurrent callers.
    A failed decode raises DecodeError and yields no detections at all.
    """

    def __init__(self, cfg: YoloPostConfig):
        self.cfg = cfg

    def process(
        self,
        layers: Sequence[LayerView],
        network_info: NetworkInfo,
        params: DetectionParams,
    ) -> List[Detection]:
        self._check_num_classes(params)

        try:
            candidates = self.decode(layers, network_info)
        except DecodeError as exc:
            logger.error("decode_failed", family=self.cfg.family.value, error=str(exc))
            raise

        candidates = sanitize(candidates, network_info)
        candidates = [c for c in candidates if c.confidence >= params.precluster_threshold(c.class_id)]

        if self.cfg.effective_cluster_mode is ClusterMode.NMS:
            clustered = cluster_nms(candidates, NMSConfig(iou_threshold=self.cfg.iou_threshold))
        else:
            clustered = list(candidates)

        detections = [d for d in clustered if d.confidence >= params.postcluster_threshold(d.class_id)]
        detections = self._select_topk(detections)
        return detections

    def decode(self, layers: Sequence[LayerView], network_info: NetworkInfo) -> List[Candidate]:
        """
        Run only the family decoder, without thresholds or clustering.
        """

        return DECODERS[self.cfg.family](layers, network_info, self.cfg)

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _check_num_classes(self, params: DetectionParams) -> None:
        if params.num_classes_configured != self.cfg.num_classes:
            logger.warning(
                "num_classes_mismatch",
                configured=params.num_classes_configured,
                network=self.cfg.num_classes,
            )

    def _select_topk(self, detections: List[Detection]) -> List[Detection]:
        if self.cfg.top_k == 0 or len(detections) <= self.cfg.top_k:
            return detections
        return sorted(detections, key=lambda d: d.confidence, reverse=True)[: self.cfg.top_k]


def sanitize(candidates: Sequence[Candidate], network_info: NetworkInfo) -> List[Candidate]:
    """
    Clamp boxes into the network frame and drop anything that cannot be a valid
    detection (non-finite values, negative class or confidence, empty box).
    Confidences above 1 are clamped to 1.
    """

    net_w = float(network_info.width)
    net_h = float(network_info.height)
    out: List[Candidate] = []

    for c in candidates:
        values = (c.left, c.top, c.width, c.height, c.confidence)
        if not all(math.isfinite(v) for v in values):
            continue
        if c.class_id < 0 or c.confidence < 0:
            continue

        x0 = min(max(float(c.left), 0.0), net_w)
        y0 = min(max(float(c.top), 0.0), net_h)
        x1 = min(max(float(c.left + c.width), 0.0), net_w)
        y1 = min(max(float(c.top + c.height), 0.0), net_h)
        if x1 - x0 <= 0 or y1 - y0 <= 0:
            continue

        out.append(
            Candidate(
                class_id=c.class_id,
                left=x0,
                top=y0,
                width=x1 - x0,
                height=y1 - y0,
                confidence=min(float(c.confidence), 1.0),
            )
        )
    return out


def parse_detections(
    layers: Sequence[LayerView],
    network_info: NetworkInfo,
    params: DetectionParams,
    cfg: YoloPostConfig,
) -> List[Detection]:
    """
    One-shot helper: build a post-processor for `cfg` and run it once.
    """

    return YoloPostprocessor(cfg).process(layers, network_info, params)
