"""Basic tests for package structure and imports."""


def test_package_import():
    """Test that the main package can be imported."""
    import ddml

    assert ddml.__version__ == "0.1.0"


def test_submodule_imports():
    """Test that submodules can be imported."""
    from ddml import core, data, estimators, inference, ml, utils

    # Basic import test - modules should exist
    assert core is not None
    assert data is not None
    assert estimators is not None
    assert inference is not None
    assert ml is not None
    assert utils is not None


def test_shared_imports():
    """Test that the shared configuration and observability layers import."""
    from shared.config import DDMLConfig
    from shared.observability import setup_logging, setup_metrics

    assert DDMLConfig().sample_folds >= 2
    assert callable(setup_logging)
    assert callable(setup_metrics)
