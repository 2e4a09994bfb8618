"""Labelled container for inference results across ensemble types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
import pandas as pd
from numpy.typing import NDArray
from scipy import stats

STATISTICS = ("Estimate", "Std. Error", "t value", "Pr(>|t|)")


@dataclass
class InferenceResult:
    """Estimates, standard errors, t values and p values per ensemble type.

    ``values`` has shape (n_coef, 4, n_ensemble). Scalar-parameter estimators
    (ATE, ATT, LATE) produce a single coefficient, for which :meth:`as_matrix`
    gives the (ensemble type x statistic) view.

    Attributes:
        values: Statistics array (n_coef, 4, n_ensemble)
        coef_names: Labels of the first axis
        ensemble_types: Labels of the third axis
        parameter: Name of the target parameter (e.g. 'ATE'), for display
    """

    values: NDArray[np.float64]
    coef_names: list[str]
    ensemble_types: list[str]
    parameter: str = ""

    def __post_init__(self) -> None:
        self.values = np.asarray(self.values, dtype=float)
        expected = (len(self.coef_names), len(STATISTICS), len(self.ensemble_types))
        if self.values.shape != expected:
            raise ValueError(
                f"values has shape {self.values.shape}, expected {expected} "
                "from the coefficient and ensemble labels"
            )

    @property
    def statistics(self) -> tuple[str, ...]:
        return STATISTICS

    @property
    def shape(self) -> tuple[int, ...]:
        return self.values.shape

    def get(
        self,
        coef: str,
        statistic: str = "Estimate",
        ensemble_type: str | None = None,
    ) -> float:
        """Single statistic; ``ensemble_type`` may be omitted when there is only one."""
        if ensemble_type is None:
            if len(self.ensemble_types) != 1:
                raise ValueError(
                    "ensemble_type is required when several ensemble types were estimated"
                )
            ensemble_type = self.ensemble_types[0]
        i = self.coef_names.index(coef)
        j = STATISTICS.index(statistic)
        k = self.ensemble_types.index(ensemble_type)
        return float(self.values[i, j, k])

    def for_ensemble(self, ensemble_type: str) -> pd.DataFrame:
        """Coefficient table of one ensemble type."""
        k = self.ensemble_types.index(ensemble_type)
        return pd.DataFrame(
            self.values[:, :, k], index=self.coef_names, columns=list(STATISTICS)
        )

    def as_matrix(self) -> pd.DataFrame:
        """Ensemble type x statistic table for scalar parameters."""
        if len(self.coef_names) != 1:
            raise ValueError(
                "as_matrix is only defined for a single coefficient; use to_frame()"
            )
        return pd.DataFrame(
            self.values[0].T, index=self.ensemble_types, columns=list(STATISTICS)
        )

    def to_frame(self) -> pd.DataFrame:
        """Long table indexed by (ensemble_type, coefficient)."""
        frames = {ens: self.for_ensemble(ens) for ens in self.ensemble_types}
        frame = pd.concat(frames, names=["ensemble_type", "coefficient"])
        return frame

    def confidence_interval(self, level: float = 0.95) -> pd.DataFrame:
        """Normal-approximation confidence intervals, indexed like :meth:`to_frame`."""
        if not 0 < level < 1:
            raise ValueError("level must be between 0 and 1")
        z = stats.norm.ppf(0.5 + level / 2)
        frame = self.to_frame()
        lower = frame["Estimate"] - z * frame["Std. Error"]
        upper = frame["Estimate"] + z * frame["Std. Error"]
        return pd.DataFrame({"lower": lower, "upper": upper})

    def __len__(self) -> int:
        return int(self.values.size)

    def __str__(self) -> str:
        title = f"DDML estimation: {self.parameter}" if self.parameter else "DDML estimation"
        lines = [title, "=" * 40]
        with pd.option_context("display.float_format", "{:.4g}".format):
            if len(self.coef_names) == 1 and len(self.ensemble_types) > 1:
                lines.append(self.as_matrix().to_string())
            else:
                for ens in self.ensemble_types:
                    lines.append(f"Ensemble type: {ens}")
                    lines.append(self.for_ensemble(ens).to_string())
                    lines.append("")
        return "\n".join(lines).rstrip()

    def __repr__(self) -> str:
        return (
            f"InferenceResult(parameter={self.parameter!r}, coefs={self.coef_names}, "
            f"ensemble_types={self.ensemble_types})"
        )

    def __getitem__(self, key: Any) -> Any:
        return self.values[key]
