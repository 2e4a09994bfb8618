"""Linear algebra helpers."""

from __future__ import annotations

import logging
from typing import Any

import numpy as np
from numpy.typing import NDArray

logger = logging.getLogger(__name__)


def csolve(a: NDArray[Any]) -> NDArray[np.float64]:
    """Inverse of a square matrix, or its Moore-Penrose pseudo-inverse when singular.

    The exact inverse is used while the matrix has full numerical rank
    (smallest singular value above ``n * eps`` times the largest, which also
    bounds the condition number below ``1 / eps``); otherwise the
    minimum-norm pseudo-inverse is returned.

    Args:
        a: Square matrix

    Returns:
        (Generalized) inverse of ``a``
    """
    a = np.atleast_2d(np.asarray(a, dtype=float))
    if a.shape[0] != a.shape[1]:
        raise ValueError(f"csolve requires a square matrix, got shape {a.shape}")

    singular_values = np.linalg.svd(a, compute_uv=False)
    tol = singular_values[0] * a.shape[0] * np.finfo(float).eps
    if np.all(np.isfinite(singular_values)) and singular_values[-1] > tol:
        return np.linalg.solve(a, np.eye(a.shape[0]))

    logger.debug(
        "Matrix is singular or near-singular (singular values %s), using pseudo-inverse",
        singular_values,
    )
    return np.linalg.pinv(a)
