from __future__ import annotations

import math
from typing import List, Sequence, Tuple

import numpy as np

from .errors import ShapeMismatchError
from .types import DataType, LayerView, NetworkInfo


def layer_from_array(name: str, array: np.ndarray) -> LayerView:
    """
    Wrap a numpy array as a LayerView. Floats become float32, integers int32.
    """

    arr = np.asarray(array)
    if np.issubdtype(arr.dtype, np.floating):
        data_type = DataType.FLOAT
    elif np.issubdtype(arr.dtype, np.integer):
        data_type = DataType.INT32
    else:
        raise TypeError(f"Unsupported dtype for layer '{name}': {arr.dtype}")

    if arr.dtype != data_type.dtype:
        arr = arr.astype(data_type.dtype)
    return LayerView(name=name, data_type=data_type, dims=tuple(int(d) for d in arr.shape), buffer=arr)


def layer_from_bytes(name: str, data_type: DataType, dims: Sequence[int], raw: bytes) -> LayerView:
    """
    Wrap a raw little-endian buffer as a LayerView without copying it.
    """

    dims = tuple(int(d) for d in dims)
    layer = LayerView(name=name, data_type=data_type, dims=dims, buffer=raw)
    # Validate the size up front so a short buffer fails at construction.
    layer.flat()
    return layer


def grid_shape(layer: LayerView) -> Tuple[int, int, int]:
    """
    Return (channels, grid_h, grid_w) for a CHW detection head.
    """

    if len(layer.dims) != 3:
        raise ShapeMismatchError(f"Layer '{layer.name}' must have 3 dims (C, H, W), got {layer.dims}.")
    c, h, w = layer.dims
    if c <= 0 or h <= 0 or w <= 0:
        raise ShapeMismatchError(f"Layer '{layer.name}' has empty dims {layer.dims}.")
    return c, h, w


def grid_stride(network_info: NetworkInfo, grid_w: int, grid_h: int) -> int:
    """
    Pixel stride of a grid cell. Width- and height-derived strides must agree.
    """

    stride_w = math.ceil(network_info.width / grid_w)
    stride_h = math.ceil(network_info.height / grid_h)
    if stride_w != stride_h:
        raise ShapeMismatchError(
            f"Stride mismatch for grid {grid_w}x{grid_h} on network "
            f"{network_info.width}x{network_info.height}: {stride_w} (width) vs {stride_h} (height)."
        )
    return stride_w


def sort_layers(layers: Sequence[LayerView]) -> List[LayerView]:
    """
    Order multi-scale heads by ascending dims[1] so the coarsest grid comes first.

    Ties keep input order.
    """

    for layer in layers:
        if len(layer.dims) < 2:
            raise ShapeMismatchError(f"Layer '{layer.name}' has too few dims to order: {layer.dims}.")
    return sorted(layers, key=lambda layer: layer.dims[1])
