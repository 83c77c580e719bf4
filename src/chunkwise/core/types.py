"""Type aliases used across the Chunkwise engine."""

from __future__ import annotations

from typing import Mapping, Union

Scalar = Union[str, int, float, bool]
JobParameters = Mapping[str, Scalar]
