"""
Object-detector output parsing.

Decodes raw output tensors from grid-anchor (YOLOv2/v3 style), direct
regression (YOLOv4/v5 style) and two-stage proposal detectors into boxes with
class ids and confidences, then suppresses overlapping duplicates per class.
Pure NumPy; the network itself runs elsewhere.
"""

from .anchors import AnchorSet, get_anchor_set
from .config import ParserConfig, load_parser_config
from .decoders import DecoderFamily
from .errors import DecodeError, ShapeMismatchError
from .layers import layer_from_array, layer_from_bytes
from .metadata import load_class_names
from .nms import NMSConfig, cluster_nms, iou, nms
from .postprocess import ClusterMode, YoloPostConfig, YoloPostprocessor, parse_detections
from .types import Candidate, DataType, Detection, DetectionParams, LayerView, NetworkInfo

__all__ = [
    "AnchorSet",
    "get_anchor_set",
    "ParserConfig",
    "load_parser_config",
    "DecoderFamily",
    "DecodeError",
    "ShapeMismatchError",
    "layer_from_array",
    "layer_from_bytes",
    "load_class_names",
    "NMSConfig",
    "cluster_nms",
    "iou",
    "nms",
    "ClusterMode",
    "YoloPostConfig",
    "YoloPostprocessor",
    "parse_detections",
    "Candidate",
    "DataType",
    "Detection",
    "DetectionParams",
    "LayerView",
    "NetworkInfo",
]
