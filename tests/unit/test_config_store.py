import json

import pytest

from vidcards.core.settings import RUNTIME_ROOT_ENV, build_paths
from vidcards.schemas.config import AppConfig
from vidcards.services.config_store import API_KEY_ENV, ConfigFileError, load_config, save_config


def test_environment_key_is_not_written_to_disk(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv(API_KEY_ENV, "sk-from-env")
    path = tmp_path / "config.json"

    config = AppConfig()
    assert config.transcription.api_key == "sk-from-env"
    config.generation.max_cards = 9
    save_config(config, path)

    stored = json.loads(path.read_text(encoding="utf-8"))
    assert stored["transcription"]["api_key"] == ""
    assert stored["generation"]["api_key"] == ""
    assert not (tmp_path / "config.json.tmp").exists()

    loaded = load_config(path)
    assert loaded.transcription.api_key == "sk-from-env"
    assert loaded.generation.api_key == "sk-from-env"
    assert loaded.generation.max_cards == 9


def test_explicit_key_is_kept(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv(API_KEY_ENV, "sk-from-env")
    path = tmp_path / "config.json"
    config = AppConfig()
    config.generation.api_key = "sk-custom"
    save_config(config, path)

    assert json.loads(path.read_text(encoding="utf-8"))["generation"]["api_key"] == "sk-custom"
    loaded = load_config(path)
    assert loaded.generation.api_key == "sk-custom"
    assert loaded.transcription.api_key == "sk-from-env"


def test_missing_file_gives_defaults(tmp_path) -> None:
    assert load_config(tmp_path / "absent.json") == AppConfig()


@pytest.mark.parametrize("content", ["{not json", '{"generation": {"max_cards": "many"}}'])
def test_broken_file_raises(tmp_path, content: str) -> None:
    path = tmp_path / "config.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigFileError):
        load_config(path)


def test_runtime_root_override(tmp_path) -> None:
    root = tmp_path.resolve()
    paths = build_paths({RUNTIME_ROOT_ENV: str(tmp_path)})
    assert paths.jobs_root == root / "jobs"
    assert paths.config_path == root / "config.json"
    assert paths.queue_path.parent == root
