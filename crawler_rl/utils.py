from __future__ import annotations
import random
from typing import Any
import numpy as np
import torch


def seed_everything(seed: int = 0) -> None:
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)
    if torch.cuda.is_available():
        torch.cuda.manual_seed_all(seed)


def lerp(a: float, b: float, t: float) -> float:
    t = min(max(float(t), 0.0), 1.0)
    return float(a + (b - a) * t)


def inverse_lerp(a: float, b: float, v: float) -> float:
    """Position of v between a and b, clamped to [0, 1]; 0 for an empty range."""
    if a == b:
        return 0.0
    return min(max((float(v) - a) / (b - a), 0.0), 1.0)


def to_jsonable(x: Any) -> Any:
    """Convert numpy scalars/arrays (possibly nested) into plain Python values."""
    if isinstance(x, dict):
        return {str(k): to_jsonable(v) for k, v in x.items()}
    if isinstance(x, (list, tuple)):
        return [to_jsonable(v) for v in x]
    if isinstance(x, np.ndarray):
        return x.tolist()
    if isinstance(x, np.generic):
        return x.item()
    return x
