import math
import unittest

import numpy as np
from structlog.testing import capture_logs

from yolo_parser.decoders import DecoderFamily
from yolo_parser.errors import DecodeError
from yolo_parser.layers import layer_from_array
from yolo_parser.postprocess import ClusterMode, YoloPostConfig, YoloPostprocessor, parse_detections, sanitize
from yolo_parser.types import Candidate, DetectionParams, NetworkInfo


def _proposal_layers(boxes, scores, classes):
    boxes = np.asarray(boxes, dtype=np.float32).reshape(-1, 4)
    return [
        layer_from_array("keep", np.array([boxes.shape[0]], dtype=np.int32)),
        layer_from_array("boxes", boxes),
        layer_from_array("scores", np.asarray(scores, dtype=np.float32)),
        layer_from_array("classes", np.asarray(classes, dtype=np.float32)),
    ]


class TestYoloPostprocessor(unittest.TestCase):
    def setUp(self) -> None:
        self.net = NetworkInfo(width=640, height=480)
        self.cfg = YoloPostConfig(family=DecoderFamily.PROPOSAL_PASSTHROUGH, num_classes=3)
        self.layers = _proposal_layers(
            boxes=[[10, 10, 60, 60], [100, 100, 160, 160], [200, 200, 260, 260], [300, 300, 360, 360]],
            scores=[0.9, 0.5, 0.3, 0.35],
            classes=[0, 1, 2, 1],
        )

    def test_class_count_mismatch_warns_and_continues(self) -> None:
        with capture_logs() as logs:
            dets = YoloPostprocessor(self.cfg).process(self.layers, self.net, DetectionParams.uniform(5))

        self.assertEqual(len(dets), 4)
        warnings = [e for e in logs if e["event"] == "num_classes_mismatch"]
        self.assertEqual(len(warnings), 1)
        self.assertEqual(warnings[0]["log_level"], "warning")
        self.assertEqual(warnings[0]["configured"], 5)
        self.assertEqual(warnings[0]["network"], 3)

    def test_no_warning_when_class_counts_match(self) -> None:
        with capture_logs() as logs:
            YoloPostprocessor(self.cfg).process(self.layers, self.net, DetectionParams.uniform(3))
        self.assertFalse([e for e in logs if e["event"] == "num_classes_mismatch"])

    def test_per_class_precluster_threshold(self) -> None:
        params = DetectionParams(
            num_classes_configured=3,
            per_class_precluster_threshold=(0.95, 0.4, 0.3),
        )
        dets = YoloPostprocessor(self.cfg).process(self.layers, self.net, params)
        # Class 0 (0.9) and the 0.35 class-1 box fall below; class 2 meets 0.3 inclusively.
        self.assertEqual(sorted((d.class_id, round(d.confidence, 2)) for d in dets), [(1, 0.5), (2, 0.3)])

    def test_postcluster_threshold(self) -> None:
        cfg = YoloPostConfig(family=DecoderFamily.PROPOSAL_PASSTHROUGH, num_classes=3, cluster_mode=ClusterMode.NMS)
        params = DetectionParams(
            num_classes_configured=3,
            per_class_postcluster_threshold=(0.0, 0.45),
        )
        dets = YoloPostprocessor(cfg).process(self.layers, self.net, params)
        # Class 2 has no entry in the vector and falls back to 0.0.
        self.assertEqual([(d.class_id, round(d.confidence, 2)) for d in dets], [(0, 0.9), (1, 0.5), (2, 0.3)])

    def test_top_k(self) -> None:
        cfg = YoloPostConfig(family=DecoderFamily.PROPOSAL_PASSTHROUGH, num_classes=3, top_k=2)
        dets = YoloPostprocessor(cfg).process(self.layers, self.net, DetectionParams.uniform(3))
        self.assertEqual([round(d.confidence, 2) for d in dets], [0.9, 0.5])

    def test_deterministic(self) -> None:
        post = YoloPostprocessor(self.cfg)
        params = DetectionParams.uniform(3)
        first = post.process(self.layers, self.net, params)
        second = post.process(self.layers, self.net, params)
        self.assertEqual(first, second)

    def test_decode_failure_logged_and_raised(self) -> None:
        with capture_logs() as logs:
            with self.assertRaises(DecodeError):
                YoloPostprocessor(self.cfg).process(self.layers[:2], self.net, DetectionParams.uniform(3))
        self.assertTrue(any(e["event"] == "decode_failed" for e in logs))

    def test_parse_detections_helper(self) -> None:
        dets = parse_detections(self.layers, self.net, DetectionParams.uniform(3), self.cfg)
        self.assertEqual(len(dets), 4)

    def test_invalid_config_rejected(self) -> None:
        with self.assertRaises(ValueError):
            YoloPostConfig(num_classes=0)
        with self.assertRaises(ValueError):
            YoloPostConfig(iou_threshold=1.5)
        with self.assertRaises(ValueError):
            YoloPostConfig(top_k=-1)

    def test_family_default_cluster_modes(self) -> None:
        self.assertIs(YoloPostConfig(family=DecoderFamily.GRID_ANCHOR).effective_cluster_mode, ClusterMode.NMS)
        self.assertIs(
            YoloPostConfig(family=DecoderFamily.DIRECT_REGRESSION).effective_cluster_mode, ClusterMode.NONE
        )
        self.assertIs(
            YoloPostConfig(family=DecoderFamily.PROPOSAL_PASSTHROUGH, cluster_mode=ClusterMode.NMS).effective_cluster_mode,
            ClusterMode.NMS,
        )


class TestSanitize(unittest.TestCase):
    def setUp(self) -> None:
        self.net = NetworkInfo(width=100, height=50)

    def test_clamps_into_frame(self) -> None:
        out = sanitize([Candidate(0, left=-10, top=40, width=50, height=30, confidence=0.5)], self.net)
        self.assertEqual(len(out), 1)
        self.assertEqual(out[0].as_xyxy(), (0.0, 40.0, 40.0, 50.0))

    def test_drops_invalid(self) -> None:
        cands = [
            Candidate(0, left=10, top=10, width=10, height=10, confidence=math.nan),
            Candidate(0, left=10, top=10, width=10, height=10, confidence=-0.1),
            Candidate(-1, left=10, top=10, width=10, height=10, confidence=0.5),
            Candidate(0, left=120, top=10, width=10, height=10, confidence=0.5),
            Candidate(0, left=10, top=10, width=0, height=10, confidence=0.5),
        ]
        self.assertEqual(sanitize(cands, self.net), [])

    def test_clamps_confidence(self) -> None:
        out = sanitize([Candidate(1, left=10, top=10, width=10, height=10, confidence=1.0008)], self.net)
        self.assertEqual(out[0].confidence, 1.0)


if __name__ == "__main__":
    unittest.main()
