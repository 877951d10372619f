"""Configuration tests.

Tests verify behavior (types, ranges, loading) not specific values.
"""

from pathlib import Path

import pytest

from convrag.config import (
    CONFIG_SCHEMA,
    Config,
    ConfigError,
    _load_config,
    load_settings,
)


@pytest.fixture
def temp_data_dir(tmp_path):
    """Create temporary data directory."""
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    return data_dir


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Clear the load_settings cache before each test."""
    load_settings.cache_clear()
    yield
    load_settings.cache_clear()


def write_config(data_dir: Path, content: str) -> Path:
    """Write a config.ini file to the data directory and return the path."""
    config_path = data_dir / "config.ini"
    config_path.write_text(content)
    return config_path


# =============================================================================
# Type Validation Tests
# =============================================================================


def test_all_settings_have_correct_types():
    """Every setting matches its declared type from schema."""
    config = _load_config(None)  # Load with defaults only

    for section_name, keys in CONFIG_SCHEMA.items():
        section = getattr(config, section_name)
        for key, (expected_type, *_) in keys.items():
            value = getattr(section, key)
            assert isinstance(value, expected_type), (
                f"{section_name}.{key}: expected {expected_type.__name__}, "
                f"got {type(value).__name__}"
            )


def test_invalid_type_raises_clear_error(temp_data_dir: Path):
    """Non-numeric value for int setting gives helpful message."""
    config_path = write_config(temp_data_dir, "[search]\ndefault_top_k = lots")

    with pytest.raises(ConfigError) as exc_info:
        _load_config(config_path)

    assert "search" in str(exc_info.value)
    assert "default_top_k" in str(exc_info.value)
    assert "int" in str(exc_info.value)


def test_invalid_float_raises_clear_error(temp_data_dir: Path):
    """Non-numeric value for float setting gives helpful message."""
    config_path = write_config(temp_data_dir, "[search]\nsemantic_weight = heavy")

    with pytest.raises(ConfigError) as exc_info:
        _load_config(config_path)

    assert "semantic_weight" in str(exc_info.value)
    assert "float" in str(exc_info.value)


# =============================================================================
# Range Validation Tests
# =============================================================================


def test_defaults_are_within_declared_ranges():
    """Default values are within their declared ranges."""
    for section_name, keys in CONFIG_SCHEMA.items():
        for key, (_, default, min_val, max_val, _) in keys.items():
            if min_val is not None:
                assert default >= min_val, f"{section_name}.{key} below minimum"
            if max_val is not None:
                assert default <= max_val, f"{section_name}.{key} above maximum"


def test_default_weights_sum_to_one():
    config = _load_config(None)

    assert config.search.semantic_weight + config.search.keyword_weight == pytest.approx(1.0)


def test_value_below_minimum_raises_error(temp_data_dir: Path):
    """Value below declared minimum raises ConfigError."""
    config_path = write_config(temp_data_dir, "[embedding]\nmax_retries = -1")

    with pytest.raises(ConfigError) as exc_info:
        _load_config(config_path)

    assert "embedding" in str(exc_info.value)
    assert "max_retries" in str(exc_info.value)
    assert "minimum" in str(exc_info.value)


def test_value_above_maximum_raises_error(temp_data_dir: Path):
    """Value above declared maximum raises ConfigError."""
    config_path = write_config(temp_data_dir, "[search]\nkeyword_weight = 1.5")

    with pytest.raises(ConfigError) as exc_info:
        _load_config(config_path)

    assert "keyword_weight" in str(exc_info.value)
    assert "maximum" in str(exc_info.value)


# =============================================================================
# Loading Behavior Tests
# =============================================================================


def test_missing_config_uses_defaults():
    """No config.ini file? All defaults load successfully."""
    config = _load_config(None)

    assert config.search is not None
    assert config.context is not None
    assert config.embedding is not None
    assert config.indexing is not None


def test_partial_config_merges_with_defaults(temp_data_dir: Path):
    """Config with only [context] still has [search] defaults."""
    config_path = write_config(temp_data_dir, "[context]\nmax_context_tokens = 1500")

    config = _load_config(config_path)

    assert config.context.max_context_tokens == 1500
    assert config.search.keyword_candidate_limit > 0
    assert config.indexing.worker_count > 0


def test_empty_config_file_uses_defaults(temp_data_dir: Path):
    """Empty config.ini file loads all defaults."""
    config_path = write_config(temp_data_dir, "")

    config = _load_config(config_path)

    assert config == _load_config(None)


# =============================================================================
# Derived Property Tests
# =============================================================================


def test_db_path_lives_in_data_dir(temp_data_dir: Path):
    config = Config(data_dir=temp_data_dir)

    assert config.db_path == temp_data_dir / "convrag.db"
    assert config.config_path == temp_data_dir / "config.ini"


def test_embedding_api_key_follows_provider():
    together = Config(embedding_provider="together_ai", together_api_key="t", openai_api_key="o")
    openai = Config(embedding_provider="openai", together_api_key="t", openai_api_key="o")
    ollama = Config(embedding_provider="ollama", together_api_key="t")

    assert together.embedding_api_key == "t"
    assert openai.embedding_api_key == "o"
    assert ollama.embedding_api_key is None


def test_endpoint_only_for_ollama():
    assert Config(embedding_provider="ollama").embedding_endpoint == "http://localhost:11434"
    assert Config(embedding_provider="openai").embedding_endpoint is None


# =============================================================================
# Integration Tests (load_settings)
# =============================================================================


def test_load_settings_from_environment(monkeypatch, temp_data_dir: Path):
    """load_settings integrates with env vars."""
    monkeypatch.setenv("CONVRAG_DATA_DIR", str(temp_data_dir))
    monkeypatch.setenv("EMBEDDING_PROVIDER", "openai")
    monkeypatch.setenv("EMBEDDING_MODEL", "text-embedding-3-small")
    monkeypatch.setenv("EMBEDDING_DIMENSION", "1536")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    settings = load_settings()

    assert settings.data_dir == temp_data_dir
    assert settings.embedding_provider == "openai"
    assert settings.embedding_model == "text-embedding-3-small"
    assert settings.embedding_dimension == 1536
    assert settings.embedding_api_key == "sk-test"


def test_load_settings_reads_config_file(monkeypatch, temp_data_dir: Path):
    write_config(temp_data_dir, "[search]\ndefault_top_k = 7\n")
    monkeypatch.setenv("CONVRAG_DATA_DIR", str(temp_data_dir))

    assert load_settings().search.default_top_k == 7


def test_load_settings_is_cached(monkeypatch, temp_data_dir: Path):
    monkeypatch.setenv("CONVRAG_DATA_DIR", str(temp_data_dir))

    assert load_settings() is load_settings()


@pytest.mark.parametrize("value", ["abc", "0", "-5"])
def test_invalid_dimension_raises(monkeypatch, temp_data_dir: Path, value):
    monkeypatch.setenv("CONVRAG_DATA_DIR", str(temp_data_dir))
    monkeypatch.setenv("EMBEDDING_DIMENSION", value)

    with pytest.raises(ConfigError):
        load_settings()
