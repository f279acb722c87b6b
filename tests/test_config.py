"""
Settings Tests
"""
import pytest

from smartqueue.core.config import EnvironmentMode, PredictorProvider, Settings, StoreBackend


def make(**overrides) -> Settings:
    return Settings(**{"_env_file": None, "gemini_api_key": None, **overrides})


@pytest.mark.parametrize(
    "env_mode, backend, expected",
    [
        ("development", StoreBackend.AUTO, False),
        ("staging", StoreBackend.AUTO, True),
        ("production", StoreBackend.AUTO, True),
        ("production", StoreBackend.MEMORY, False),
        ("development", StoreBackend.SQL, True),
    ],
)
def test_store_backend_resolution(env_mode, backend, expected):
    assert make(env_mode=env_mode, store_backend=backend).use_sql_store is expected


def test_env_mode_is_case_insensitive():
    assert make(env_mode="PRODUCTION").env_mode == EnvironmentMode.PRODUCTION


def test_invalid_env_mode_is_rejected():
    with pytest.raises(ValueError):
        make(env_mode="qa")


def test_business_hours_span():
    settings = make(business_hours_start=10, business_hours_end=14)

    assert settings.business_hours == [10, 11, 12, 13, 14]


def test_snapshot_path_only_when_enabled(tmp_path):
    enabled = make(data_directory=str(tmp_path), snapshot_enabled=True)
    disabled = make(snapshot_enabled=False)

    assert enabled.snapshot_path == tmp_path / enabled.snapshot_filename
    assert disabled.snapshot_path is None


def test_production_reports_missing_predictor_key():
    assert make(env_mode="production").validate_production_config() == ["GEMINI_API_KEY"]
    assert make(env_mode="production", gemini_api_key="k").validate_production_config() == []
    assert make(
        env_mode="production", predictor_provider=PredictorProvider.NONE
    ).validate_production_config() == []
    assert make(env_mode="development").validate_production_config() == []
