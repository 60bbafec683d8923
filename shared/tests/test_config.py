"""Tests for configuration loading."""

from pathlib import Path

import pytest
from shared.config import (
    ENV_OVERRIDES,
    Config,
    PathsConfig,
    load_config,
)

APP_TOML = """
[paths]
knowledge_base_dir = "{kb_dir}"
database_dir = "{db_dir}"

[retrieval.support]
match_threshold = 0.7
match_count = 2
prompt_key = "support"

[generation_model]
model_name = "openai/gpt-4o-mini"
"""

PROMPTS_TOML = """
[chat]
system_prompt = "Be brief."
"""


@pytest.fixture(autouse=True)
def clear_env(monkeypatch):
    for name in ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_dir(tmp_path):
    directory = tmp_path / "config"
    directory.mkdir()
    (directory / "app.toml").write_text(
        APP_TOML.format(kb_dir=tmp_path / "kb", db_dir=tmp_path / "db")
    )
    (directory / "prompts.toml").write_text(PROMPTS_TOML)
    return directory


def test_defaults(tmp_path):
    config = Config(paths=PathsConfig(knowledge_base_dir=str(tmp_path)))

    assert config.ingestion.min_chunk_length == 50
    assert config.embedding_model.model_name == "thenlper/gte-small"
    assert config.retrieval.knowledge_base.match_threshold == 0.5
    assert config.retrieval.knowledge_base.match_count == 5
    assert config.retrieval.support.match_threshold == 0.65
    assert config.retrieval.support.match_count == 4
    assert config.retrieval.max_context_chars is None


def test_load_config_reads_both_files(config_dir, tmp_path):
    config = load_config(config_dir=str(config_dir))

    assert config.paths.knowledge_base_dir == str(tmp_path / "kb")
    assert config.retrieval.support.match_threshold == 0.7
    assert config.retrieval.knowledge_base.match_threshold == 0.5
    assert config.generation_model.model_name == "openai/gpt-4o-mini"
    assert config.get_prompt("chat", "system_prompt", "default") == "Be brief."


def test_missing_app_config_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(config_dir=str(tmp_path))


def test_missing_prompts_falls_back_to_defaults(config_dir):
    (config_dir / "prompts.toml").unlink()

    config = load_config(config_dir=str(config_dir))

    assert config.prompts == {}
    assert config.get_prompt("chat", "system_prompt", "default") == "default"


def test_explicit_paths_override_config_dir(config_dir, tmp_path):
    other_prompts = tmp_path / "other.toml"
    other_prompts.write_text('[support]\nsystem_prompt = "Support voice."\n')

    config = load_config(
        app_config_path=str(config_dir / "app.toml"),
        prompts_config_path=str(other_prompts),
    )

    assert config.get_prompt("support", "system_prompt", "x") == "Support voice."


def test_environment_overrides_credentials(config_dir, monkeypatch):
    monkeypatch.setenv("KB_RAG_GENERATION_API_KEY", "gen-secret")
    monkeypatch.setenv("KB_RAG_EMBEDDING_MODEL", "BAAI/bge-small-en-v1.5")
    monkeypatch.setenv("KB_RAG_KNOWLEDGE_BASE_DIR", "/srv/kb")

    config = load_config(config_dir=str(config_dir))

    assert config.generation_model.api_key == "gen-secret"
    assert config.embedding_model.model_name == "BAAI/bge-small-en-v1.5"
    assert config.paths.knowledge_base_dir == "/srv/kb"


def test_empty_environment_values_are_ignored(config_dir, monkeypatch, tmp_path):
    monkeypatch.setenv("KB_RAG_DATABASE_DIR", "")

    config = load_config(config_dir=str(config_dir))

    assert config.paths.database_dir == str(tmp_path / "db")


def test_should_include_file(tmp_path):
    config = Config(paths=PathsConfig(knowledge_base_dir=str(tmp_path)))

    assert config.should_include_file("guide.md")
    assert not config.should_include_file("README.md")
    assert not config.should_include_file("guide.txt")


def test_shipped_config_files_load():
    config = load_config(config_dir=str(Path(__file__).parents[2] / "config"))

    assert config.retrieval.knowledge_base.prompt_key == "chat"
    assert config.retrieval.support.prompt_key == "support"
    assert "system_prompt" in config.prompts["chat"]
    assert "system_prompt" in config.prompts["support"]
