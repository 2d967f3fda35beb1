"""Tests for LexisConfig loading and overrides."""

import pytest

from lexis_kg.config import LexisConfig


class TestLexisConfig:
    """Test configuration sources."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("LEXIS_CONCURRENCY", raising=False)
        config = LexisConfig()
        assert config.batch_size == 3
        assert config.concurrency == 10
        assert config.source_language == "halunder"
        assert config.target_language == "german"

    def test_kwargs_override(self):
        assert LexisConfig(run_budget=7).run_budget == 7

    def test_unknown_option(self):
        with pytest.raises(ValueError, match="Unknown configuration option"):
            LexisConfig(bogus=1)

    def test_env(self, monkeypatch):
        monkeypatch.setenv("LEXIS_CONCURRENCY", "5")
        monkeypatch.setenv("LEXIS_RETRY_BASE_DELAY", "2.5")
        monkeypatch.setenv("LEXIS_DB_PATH", "/tmp/corpus.duckdb")

        config = LexisConfig()

        assert config.concurrency == 5
        assert config.retry_base_delay == 2.5
        assert config.db_path == "/tmp/corpus.duckdb"

    def test_env_invalid_number(self, monkeypatch):
        monkeypatch.setenv("LEXIS_BATCH_SIZE", "three")
        with pytest.raises(ValueError, match="LEXIS_BATCH_SIZE"):
            LexisConfig()

    def test_from_file_sections(self, tmp_path):
        path = tmp_path / "lexis.toml"
        path.write_text(
            'db_path = "./corpus.duckdb"\n'
            "\n"
            "[llm]\n"
            'model = "gpt-4.1"\n'
            "\n"
            "[batch]\n"
            "concurrency = 4\n"
            "\n"
            "[retry]\n"
            "max_attempts = 6\n"
        )

        config = LexisConfig.from_file(path)

        assert config.db_path == "./corpus.duckdb"
        assert config.llm_model == "gpt-4.1"
        assert config.concurrency == 4
        assert config.retry_max_attempts == 6

    def test_file_round_trip(self, tmp_path, config):
        path = tmp_path / "out" / "lexis.toml"
        config.to_file(path)

        loaded = LexisConfig.from_file(path)

        assert loaded.batch_size == config.batch_size
        assert loaded.retry_base_delay == config.retry_base_delay
        assert loaded.source_language == config.source_language
        assert "api_key" not in path.read_text()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            LexisConfig.from_file(tmp_path / "nope.toml")

    def test_with_overrides_copies(self, config):
        changed = config.with_overrides(batch_size=9)
        assert changed.batch_size == 9
        assert config.batch_size == 2
        with pytest.raises(ValueError):
            config.with_overrides(bogus=1)
