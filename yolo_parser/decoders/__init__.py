"""
Tensor decoders, one per detector family.

Each decoder is a plain function `(layers, network_info, cfg) -> candidates`
selected through `DecoderFamily`; there is no runtime type inspection.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Dict, List

from ..types import Candidate
from .direct import decode_direct
from .grid_anchor import decode_grid_anchor, decode_grid_layer
from .proposal import decode_proposals


class DecoderFamily(Enum):
    GRID_ANCHOR = "grid_anchor"
    DIRECT_REGRESSION = "direct_regression"
    PROPOSAL_PASSTHROUGH = "proposal_passthrough"


DecodeFn = Callable[..., List[Candidate]]

DECODERS: Dict[DecoderFamily, DecodeFn] = {
    DecoderFamily.GRID_ANCHOR: decode_grid_anchor,
    DecoderFamily.DIRECT_REGRESSION: decode_direct,
    DecoderFamily.PROPOSAL_PASSTHROUGH: decode_proposals,
}

__all__ = [
    "DecoderFamily",
    "DECODERS",
    "decode_direct",
    "decode_grid_anchor",
    "decode_grid_layer",
    "decode_proposals",
]
