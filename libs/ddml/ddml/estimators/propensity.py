"""Propensity score trimming for inverse-probability weighted scores."""

from __future__ import annotations

import logging
import warnings
from collections.abc import Sequence
from typing import Any

import numpy as np
from numpy.typing import NDArray

from shared.observability.metrics import get_metrics

logger = logging.getLogger(__name__)


class PropensityTrimmingWarning(UserWarning):
    """Emitted when cross-fitted propensity scores are clipped."""


def trim_propensity_scores(
    m_X: NDArray[Any],  # noqa: N803
    trim: float,
    ensemble_types: Sequence[str],
) -> NDArray[np.float64]:
    """Clip propensity scores into ``[trim, 1 - trim]``.

    Every ensemble-type column is trimmed separately and, when anything was
    clipped in a column, a warning with the count is emitted for that column.

    Args:
        m_X: Propensity scores (n,) or (n, C), one column per ensemble type
        trim: Threshold in (0, 0.5)
        ensemble_types: Column labels, used in the warning when C > 1

    Returns:
        Trimmed copy of ``m_X`` with shape (n, C)

    Raises:
        ValueError: If ``trim`` is outside (0, 0.5) or labels don't match columns
    """
    if not 0 < trim < 0.5:
        raise ValueError(f"trim must lie strictly between 0 and 0.5, got {trim}")

    scores = np.array(m_X, dtype=float)
    if scores.ndim == 1:
        scores = scores.reshape(-1, 1)
    if scores.shape[1] != len(ensemble_types):
        raise ValueError(
            f"Got {scores.shape[1]} propensity columns for "
            f"{len(ensemble_types)} ensemble types"
        )

    metrics = get_metrics()
    for j, ensemble_type in enumerate(ensemble_types):
        column = scores[:, j]
        low = column <= trim
        high = column >= 1 - trim
        n_trimmed = int(low.sum() + high.sum())
        if n_trimmed == 0:
            continue

        column[low] = trim
        column[high] = 1 - trim

        message = f"{n_trimmed} propensity scores were trimmed."
        if len(ensemble_types) > 1:
            message = f"{ensemble_type}: {message}"
        warnings.warn(message, PropensityTrimmingWarning, stacklevel=2)
        logger.info(message)
        metrics.record_trimming(ensemble_type, n_trimmed)

    return scores
