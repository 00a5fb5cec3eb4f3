from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Sequence, Tuple

import numpy as np

from .errors import ShapeMismatchError


class DataType(Enum):
    FLOAT = "float32"
    INT32 = "int32"

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(self.value)


@dataclass(frozen=True)
class LayerView:
    """
    Read-only view of one output tensor handed over by the inference runtime.

    `dims` excludes the batch axis. `buffer` can be a numpy array or any object
    exposing the buffer protocol; it stays owned by the caller.
    """

    name: str
    data_type: DataType
    dims: Tuple[int, ...]
    buffer: Any

    @property
    def num_elements(self) -> int:
        return int(np.prod(self.dims, dtype=np.int64)) if self.dims else 0

    def flat(self) -> np.ndarray:
        """
        Flat read-only numpy view of the buffer, exactly `num_elements` long.
        """

        if isinstance(self.buffer, np.ndarray):
            arr = self.buffer.reshape(-1)
            if arr.dtype != self.data_type.dtype:
                arr = arr.astype(self.data_type.dtype)
        else:
            nbytes = memoryview(self.buffer).nbytes
            itemsize = self.data_type.dtype.itemsize
            if nbytes % itemsize:
                raise ShapeMismatchError(
                    f"Layer '{self.name}' buffer is {nbytes} bytes, "
                    f"not a multiple of {itemsize}-byte {self.data_type.value}."
                )
            arr = np.frombuffer(self.buffer, dtype=self.data_type.dtype)

        if arr.size < self.num_elements:
            raise ShapeMismatchError(
                f"Layer '{self.name}' holds {arr.size} elements, dims {self.dims} need {self.num_elements}."
            )
        arr = arr[: self.num_elements]
        if arr.flags.writeable:
            arr = arr.view()
            arr.flags.writeable = False
        return arr

    def array(self) -> np.ndarray:
        return self.flat().reshape(self.dims)


@dataclass(frozen=True)
class NetworkInfo:
    width: int
    height: int
    channels: int = 3


@dataclass(frozen=True)
class DetectionParams:
    """
    Caller-side detection parameters.

    Thresholds are indexed by class id; ids past the end of a vector use 0.0.
    """

    num_classes_configured: int
    per_class_precluster_threshold: Tuple[float, ...] = ()
    per_class_postcluster_threshold: Tuple[float, ...] = ()

    @classmethod
    def uniform(cls, num_classes: int, precluster: float = 0.0, postcluster: float = 0.0) -> "DetectionParams":
        return cls(
            num_classes_configured=num_classes,
            per_class_precluster_threshold=(float(precluster),) * num_classes,
            per_class_postcluster_threshold=(float(postcluster),) * num_classes,
        )

    def precluster_threshold(self, class_id: int) -> float:
        return _lookup(self.per_class_precluster_threshold, class_id)

    def postcluster_threshold(self, class_id: int) -> float:
        return _lookup(self.per_class_postcluster_threshold, class_id)


def _lookup(values: Sequence[float], class_id: int) -> float:
    if 0 <= class_id < len(values):
        return float(values[class_id])
    return 0.0


@dataclass
class Detection:
    """
    One detected object in network-input pixel coordinates.
    """

    class_id: int
    left: float
    top: float
    width: float
    height: float
    confidence: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.left, self.top, self.right, self.bottom

    def as_cxcywh(self) -> Tuple[float, float, float, float]:
        return self.left + self.width / 2, self.top + self.height / 2, self.width, self.height

    @classmethod
    def from_cxcywh(
        cls, cx: float, cy: float, w: float, h: float, confidence: float, class_id: int
    ) -> "Detection":
        return cls(
            class_id=int(class_id),
            left=float(cx - w / 2),
            top=float(cy - h / 2),
            width=float(w),
            height=float(h),
            confidence=float(confidence),
        )


# Raw decoder output, before thresholds and clustering.
Candidate = Detection
