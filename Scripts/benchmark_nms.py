from __future__ import annotations

import argparse
import time
from typing import Dict, List

import numpy as np

from yolo_parser import Candidate, NMSConfig, cluster_nms


def _latency_ms(samples_s: List[float]) -> Dict[str, float]:
    ms = np.asarray(samples_s, dtype=np.float64) * 1000.0
    p50, p90, p95 = np.percentile(ms, [50.0, 90.0, 95.0])
    return {"n": float(ms.size), "mean": float(ms.mean()), "p50": float(p50), "p90": float(p90), "p95": float(p95)}


def _format_latency(label: str, stats: Dict[str, float]) -> str:
    return (
        f"{label}: n={int(stats['n'])} mean={stats['mean']:.3f}ms p50={stats['p50']:.3f}ms "
        f"p90={stats['p90']:.3f}ms p95={stats['p95']:.3f}ms"
    )


def _synthetic_candidates(n: int, n_classes: int, size: int, seed: int) -> List[Candidate]:
    rng = np.random.default_rng(seed)
    xy = rng.uniform(0, size * 0.9, size=(n, 2))
    wh = rng.uniform(5, size * 0.15, size=(n, 2))
    scores = rng.uniform(0.0, 1.0, size=n)
    class_ids = rng.integers(0, n_classes, size=n)
    return [
        Candidate(
            class_id=int(c),
            left=float(x),
            top=float(y),
            width=float(w),
            height=float(h),
            confidence=float(s),
        )
        for (x, y), (w, h), s, c in zip(xy, wh, scores, class_ids)
    ]


def _topk(candidates: List[Candidate], k: int) -> List[Candidate]:
    return sorted(candidates, key=lambda c: c.confidence, reverse=True)[:k]


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Benchmark class-wise NMS latency against a plain top-K selection on synthetic candidates."
    )
    parser.add_argument("--boxes", type=int, default=300, help="Candidates per iteration.")
    parser.add_argument("--classes", type=int, default=80, help="Number of classes to spread candidates over.")
    parser.add_argument("--size", type=int, default=416, help="Synthetic network resolution (square).")
    parser.add_argument("--conf", type=float, default=0.25, help="Confidence threshold applied before NMS.")
    parser.add_argument("--iou", type=float, default=0.5, help="IoU threshold for NMS.")
    parser.add_argument("--max-det", type=int, default=100, help="K for the top-K baseline.")
    parser.add_argument("--iterations", type=int, default=200, help="Recorded iterations.")
    parser.add_argument("--warmup", type=int, default=10, help="Iterations to run but not record.")
    parser.add_argument("--seed", type=int, default=0)
    args = parser.parse_args()

    if args.boxes < 1:
        raise ValueError("--boxes must be >= 1")
    if args.classes < 1:
        raise ValueError("--classes must be >= 1")
    if args.iterations < 1:
        raise ValueError("--iterations must be >= 1")
    if args.warmup < 0:
        raise ValueError("--warmup must be >= 0")
    if args.max_det < 1:
        raise ValueError("--max-det must be >= 1")

    candidates = _synthetic_candidates(args.boxes, args.classes, args.size, args.seed)
    cfg = NMSConfig(iou_threshold=float(args.iou), conf_threshold=float(args.conf))

    t_nms: List[float] = []
    t_topk: List[float] = []
    kept = 0
    for i in range(args.warmup + args.iterations):
        t0 = time.perf_counter()
        result = cluster_nms(candidates, cfg)
        t1 = time.perf_counter()
        _ = _topk(candidates, args.max_det)
        t2 = time.perf_counter()

        if i < args.warmup:
            continue
        t_nms.append(t1 - t0)
        t_topk.append(t2 - t1)
        kept = len(result)

    print(_format_latency("cluster_nms", _latency_ms(t_nms)))
    print(_format_latency("topk_only", _latency_ms(t_topk)))
    print(f"candidates={len(candidates)} kept_after_nms={kept} warmup={args.warmup}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
