"""Tests for regression-residual and moment-based inference."""

import numpy as np
import pandas as pd
import pytest
from scipy import stats

from ddml.inference.results import STATISTICS, InferenceResult
from ddml.inference.sandwich import (
    add_constant,
    compute_inf_results_by_ensemble,
    fit_iv,
    fit_ols,
    organize_inf_results,
    vcov_sandwich,
)
from ddml.inference.scores import (
    compute_moment_inf_results,
    organize_moment_inf_results,
    solve_moment,
)


class TestSandwich:
    """Test cases for the sandwich covariance estimators."""

    def setup_method(self):
        rng = np.random.RandomState(0)
        self.n = 4000
        self.x = rng.normal(size=self.n)
        self.X = add_constant(self.x)
        self.y = 1.0 + 0.5 * self.x + rng.normal(size=self.n)
        self.fit = fit_ols(self.y, self.X, ["(Intercept)", "x"])

    def test_ols_coefficients(self):
        expected, *_ = np.linalg.lstsq(self.X, self.y, rcond=None)
        np.testing.assert_allclose(self.fit.coefficients, expected)
        np.testing.assert_allclose(self.fit.residuals, self.y - self.X @ expected)

    def test_hc0_matches_manual_sandwich(self):
        bread = np.linalg.inv(self.X.T @ self.X)
        meat = (self.X * self.fit.residuals[:, None] ** 2).T @ self.X
        np.testing.assert_allclose(
            vcov_sandwich(self.fit, "HC0"), bread @ meat @ bread, rtol=1e-10
        )

    def test_hc1_scales_hc0(self):
        n, k = self.X.shape
        np.testing.assert_allclose(
            vcov_sandwich(self.fit, "HC1"), vcov_sandwich(self.fit, "HC0") * n / (n - k)
        )

    def test_hc3_exceeds_hc0(self):
        se0 = np.sqrt(np.diag(vcov_sandwich(self.fit, "HC0")))
        se3 = np.sqrt(np.diag(vcov_sandwich(self.fit, "hc3")))
        assert np.all(se3 > se0)

    def test_homoskedastic_errors_match_classical(self):
        n, k = self.X.shape
        sigma2 = self.fit.residuals @ self.fit.residuals / (n - k)
        classical = np.sqrt(np.diag(sigma2 * np.linalg.inv(self.X.T @ self.X)))
        robust = np.sqrt(np.diag(vcov_sandwich(self.fit, "HC1")))
        np.testing.assert_allclose(robust, classical, rtol=0.1)

    def test_cluster_robust(self):
        clusters = np.repeat(np.arange(200), self.n // 200)
        n, k = self.X.shape
        scores = self.X * self.fit.residuals[:, None]
        totals = np.vstack([scores[clusters == g].sum(axis=0) for g in range(200)])
        bread = np.linalg.inv(self.X.T @ self.X)
        factor = (200 / 199) * ((n - 1) / (n - k))
        expected = bread @ (factor * totals.T @ totals) @ bread

        np.testing.assert_allclose(
            vcov_sandwich(self.fit, clusters=clusters), expected, rtol=1e-10
        )

    def test_single_cluster(self):
        with pytest.raises(ValueError, match="at least two clusters"):
            vcov_sandwich(self.fit, clusters=np.zeros(self.n))

    def test_unknown_cov_type(self):
        with pytest.raises(ValueError, match="cov_type"):
            vcov_sandwich(self.fit, "HC5")

    def test_statistics_columns(self):
        table = compute_inf_results_by_ensemble(self.fit)
        se = np.sqrt(np.diag(vcov_sandwich(self.fit)))

        np.testing.assert_allclose(table[:, 0], self.fit.coefficients)
        np.testing.assert_allclose(table[:, 1], se)
        np.testing.assert_allclose(table[:, 2], self.fit.coefficients / se)
        np.testing.assert_allclose(table[:, 3], 2 * stats.norm.sf(np.abs(table[:, 2])))


class TestInstrumentalVariables:
    """Test cases for two-stage least squares."""

    def test_just_identified_iv(self):
        rng = np.random.RandomState(1)
        n = 3000
        z = rng.normal(size=n)
        u = rng.normal(size=n)
        d = z + u + rng.normal(size=n)
        y = 2.0 * d + u
        X = add_constant(d)
        Z = add_constant(z)

        fit = fit_iv(y, X, Z, ["(Intercept)", "d"])

        np.testing.assert_allclose(
            fit.coefficients, np.linalg.solve(Z.T @ X, Z.T @ y), rtol=1e-8
        )
        assert fit.coefficients[1] == pytest.approx(2.0, abs=0.1)
        # OLS is biased by the shared error u
        assert fit_ols(y, X, ["(Intercept)", "d"]).coefficients[1] > 2.2

    def test_under_identified(self):
        with pytest.raises(ValueError, match="at least as many instruments"):
            fit_iv(np.ones(5), np.ones((5, 2)), np.ones((5, 1)), ["a", "b"])

    def test_organize_stacks_ensembles(self):
        rng = np.random.RandomState(2)
        X = add_constant(rng.normal(size=100))
        fits = [fit_ols(X @ [0.0, b] + rng.normal(size=100), X, ["c", "x"]) for b in (1, 2)]

        result = organize_inf_results(fits, ["nnls", "ols"], parameter="PLM")

        assert result.shape == (2, 4, 2)
        assert result.get("x", ensemble_type="ols") == pytest.approx(
            fits[1].coefficients[1]
        )

    def test_organize_requires_one_fit_per_type(self):
        with pytest.raises(ValueError, match="one fit per ensemble type"):
            organize_inf_results([], ["nnls"])


class TestMomentInference:
    """Test cases for moment-condition estimators."""

    def setup_method(self):
        rng = np.random.RandomState(3)
        self.n = 1000
        self.psi_a = -(1 + rng.uniform(size=self.n))
        self.psi_b = 1.5 * (1 + rng.uniform(size=self.n)) + rng.normal(size=self.n)

    def test_root_solves_moment_condition(self):
        theta = solve_moment(self.psi_a, self.psi_b)

        assert theta.shape == (1,)
        assert np.mean(self.psi_a * theta[0] + self.psi_b) == pytest.approx(0.0, abs=1e-12)

    def test_standard_error_formula(self):
        theta = solve_moment(self.psi_a, self.psi_b)[0]
        row = compute_moment_inf_results(theta, self.psi_a, self.psi_b)

        score = self.psi_a * theta + self.psi_b
        se = np.sqrt(np.mean(score**2) / self.n) / abs(np.mean(self.psi_a))
        t_value = theta / se
        np.testing.assert_allclose(
            row, [theta, se, t_value, 2 * stats.norm.sf(abs(t_value))]
        )

    def test_singleton_clusters_match_unclustered(self):
        theta = solve_moment(self.psi_a, self.psi_b)[0]
        np.testing.assert_allclose(
            compute_moment_inf_results(
                theta, self.psi_a, self.psi_b, clusters=np.arange(self.n)
            ),
            compute_moment_inf_results(theta, self.psi_a, self.psi_b),
        )

    def test_clustered_scores_widen_errors(self):
        clusters = np.repeat(np.arange(50), self.n // 50)
        psi_b = self.psi_b + np.repeat(np.random.RandomState(4).normal(size=50), self.n // 50)
        theta = solve_moment(self.psi_a, psi_b)[0]

        clustered = compute_moment_inf_results(theta, self.psi_a, psi_b, clusters=clusters)
        plain = compute_moment_inf_results(theta, self.psi_a, psi_b)
        assert clustered[1] > plain[1]

    def test_organize_per_ensemble_column(self):
        psi_b = np.column_stack([self.psi_b, 2 * self.psi_b])
        theta = solve_moment(self.psi_a, psi_b)

        result = organize_moment_inf_results(theta, self.psi_a, psi_b, ["nnls", "ols"], "ATE")

        assert result.shape == (1, 4, 2)
        assert theta[1] == pytest.approx(2 * theta[0])
        np.testing.assert_allclose(result[0, 0, :], theta)
        assert result.coef_names == ["ATE"]

    def test_organize_estimate_count_mismatch(self):
        with pytest.raises(ValueError, match="one estimate per ensemble type"):
            organize_moment_inf_results(
                np.array([1.0]), self.psi_a, self.psi_b, ["nnls", "ols"], "ATE"
            )


class TestInferenceResult:
    """Test cases for the labelled result container."""

    def setup_method(self):
        values = np.zeros((1, 4, 3))
        values[0, 0] = [1.0, 1.1, 1.2]
        values[0, 1] = [0.5, 0.5, 0.5]
        values[0, 2] = values[0, 0] / values[0, 1]
        values[0, 3] = 2 * stats.norm.sf(np.abs(values[0, 2]))
        self.result = InferenceResult(
            values, ["ATE"], ["nnls", "ols", "custom_1"], parameter="ATE"
        )

    def test_shape_validation(self):
        with pytest.raises(ValueError, match="expected"):
            InferenceResult(np.zeros((1, 4, 2)), ["ATE"], ["nnls"])

    def test_get(self):
        assert self.result.get("ATE", "Estimate", "ols") == 1.1
        with pytest.raises(ValueError, match="ensemble_type is required"):
            self.result.get("ATE")

    def test_as_matrix(self):
        matrix = self.result.as_matrix()

        assert list(matrix.index) == ["nnls", "ols", "custom_1"]
        assert list(matrix.columns) == list(STATISTICS)
        assert matrix.loc["custom_1", "Estimate"] == 1.2

    def test_to_frame(self):
        frame = self.result.to_frame()

        assert isinstance(frame.index, pd.MultiIndex)
        assert frame.index.names == ["ensemble_type", "coefficient"]
        assert frame.loc[("ols", "ATE"), "Std. Error"] == 0.5

    def test_confidence_interval(self):
        ci = self.result.confidence_interval(0.95)
        z = stats.norm.ppf(0.975)

        assert ci.loc[("nnls", "ATE"), "lower"] == pytest.approx(1.0 - z * 0.5)
        assert ci.loc[("nnls", "ATE"), "upper"] == pytest.approx(1.0 + z * 0.5)
        with pytest.raises(ValueError):
            self.result.confidence_interval(1.5)

    def test_len_and_display(self):
        assert len(self.result) == 12
        text = str(self.result)

        assert "DDML estimation: ATE" in text
        assert "custom_1" in text
        assert "InferenceResult" in repr(self.result)
