"""Example: DDML with stacked nuisance learners on simulated data.

This example estimates a partially linear model and an average treatment
effect, combining linear, penalized and tree-based learners through
stacking. Several ensemble schemes are estimated in one pass so their
estimates can be compared side by side.
"""

from sklearn.linear_model import LinearRegression
from sklearn.pipeline import make_pipeline
from sklearn.preprocessing import PolynomialFeatures

from ddml import DDMLATE, DDMLPLM, mdl_glm, mdl_glmnet, mdl_random_forest, ols
from ddml.data.synthetic import SyntheticDataGenerator
from ddml.ml.learners import LearnerSpec
from shared.config import get_config
from shared.observability import setup_logging, setup_metrics


def main():
    """Run the stacking examples."""
    config = get_config()
    setup_logging(config)
    setup_metrics(config)

    generator = SyntheticDataGenerator(random_state=123)

    print("=== Partially linear model with short-stacking ===")
    treatment, outcome, covariates = generator.generate_plm(n_samples=1000, theta=0.5)

    learners = [
        LearnerSpec(learner=ols(), name="ols"),
        LearnerSpec(learner=mdl_glmnet(), name="lasso"),
        LearnerSpec(
            learner=make_pipeline(PolynomialFeatures(degree=2), LinearRegression()),
            name="poly2",
        ),
        LearnerSpec(
            learner=mdl_random_forest(n_estimators=100, min_samples_leaf=5),
            name="forest",
        ),
    ]
    plm = DDMLPLM(
        learners,
        ensemble_type=["nnls", "nnls1", "singlebest", "average"],
        shortstack=True,
        sample_folds=5,
        random_state=1,
    )
    plm.fit(treatment, outcome, covariates)
    print(plm.summary())
    print()
    print("Stacking weights for E[y|X]:")
    print(plm.weights_["y_X"].mean(axis=2).round(3))
    print()

    print("=== Average treatment effect with nested stacking ===")
    treatment, outcome, covariates = generator.generate_binary_treatment(
        n_samples=1000, treatment_effect=1.5
    )
    ate = DDMLATE(
        learners[:3],
        learners_DX=[mdl_glm(), mdl_random_forest(classification=True, n_estimators=100)],
        ensemble_type=["nnls1", "average"],
        sample_folds=5,
        cv_folds=5,
        random_state=1,
    )
    ate.fit(treatment, outcome, covariates)
    summary = ate.summary()
    print(summary)
    print()
    print("95% confidence intervals:")
    print(summary.confidence_interval())


if __name__ == "__main__":
    main()
