"""Job parameter normalization and the stable job key derived from it.

A job instance is identified by ``(job_name, job_key)``. The key is the MD5
hex digest of the sorted ``name=type:value;`` serialization, so that
``{"run": 1}`` and ``{"run": "1"}`` are different instances while key order
never matters.
"""

from __future__ import annotations

import hashlib
import math
from typing import Any, Mapping

from chunkwise.core.exceptions import InvalidJobParameters
from chunkwise.core.types import Scalar

_SCALAR_TYPES = (str, int, float, bool)


def validate_job_name(job_name: Any) -> str:
    if not isinstance(job_name, str) or not job_name.strip():
        raise InvalidJobParameters(f"Job name must be a non-empty string, got {job_name!r}")
    return job_name


def normalize_parameters(parameters: Mapping[str, Any] | None) -> dict[str, Scalar]:
    """Validate a parameter mapping and return a key-sorted plain dict."""
    if parameters is None:
        return {}
    if not isinstance(parameters, Mapping):
        raise InvalidJobParameters(
            f"Job parameters must be a mapping, got {type(parameters).__name__}"
        )

    normalized: dict[str, Scalar] = {}
    for name, value in parameters.items():
        if not isinstance(name, str) or not name:
            raise InvalidJobParameters(f"Parameter names must be non-empty strings, got {name!r}")
        if not isinstance(value, _SCALAR_TYPES):
            raise InvalidJobParameters(
                f"Parameter {name!r} must be str, int, float or bool, got {type(value).__name__}"
            )
        if isinstance(value, float) and not math.isfinite(value):
            raise InvalidJobParameters(f"Parameter {name!r} must be finite, got {value!r}")
        normalized[name] = value
    return dict(sorted(normalized.items()))


def job_key(parameters: Mapping[str, Any] | None) -> str:
    normalized = normalize_parameters(parameters)
    text = "".join(
        f"{name}={type(value).__name__}:{value};" for name, value in normalized.items()
    )
    return hashlib.md5(text.encode("utf-8")).hexdigest()
