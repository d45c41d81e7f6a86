from __future__ import annotations
from typing import List, Union
import numpy as np


class VectorSensor:
    """Accumulates a flat float observation, one `add_observation` call at a time."""

    def __init__(self) -> None:
        self._values: List[float] = []

    def add_observation(self, value: Union[float, bool, np.ndarray, list, tuple]) -> None:
        if isinstance(value, (bool, np.bool_)):
            self._values.append(1.0 if value else 0.0)
            return
        arr = np.asarray(value, dtype=np.float64).reshape(-1)
        self._values.extend(float(v) for v in arr)

    def reset(self) -> None:
        self._values = []

    def __len__(self) -> int:
        return len(self._values)

    def build(self) -> np.ndarray:
        return np.asarray(self._values, dtype=np.float32)
