from __future__ import annotations

from pathlib import Path

import pytest

from docsynth.config import ensure_trace_root, load_config, resolve_templates_dir
from docsynth.exceptions import InvalidConfigError
from docsynth.models import AppConfig


def test_load_config_defaults() -> None:
    config = load_config()

    assert config.workspace_root == "."
    assert config.templates_dir == ".docsynth/templates"
    assert config.author is None
    assert config.default_template == "basic"
    assert config.enable_document_updates is True
    assert config.trace_dir is None


def test_load_config_with_yaml_and_overrides(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "author: Yaml Author\ndefault_template: prd\ntemplates_dir: team-templates\n",
        encoding="utf-8",
    )

    config = load_config(
        config_path=config_path,
        overrides={"default_template": "design", "author": None},
    )

    assert config.default_template == "design"
    assert config.author == "Yaml Author"
    assert config.templates_dir == "team-templates"


def test_environment_overrides_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("author: Yaml Author\n", encoding="utf-8")
    monkeypatch.setenv("DOCSYNTH_AUTHOR", "Env Author")
    monkeypatch.setenv("DOCSYNTH_ENABLE_DOCUMENT_UPDATES", "off")
    monkeypatch.setenv("DOCSYNTH_TRACE_DIR", "")

    config = load_config(config_path=config_path)

    assert config.author == "Env Author"
    assert config.enable_document_updates is False
    assert config.trace_dir is None


def test_load_config_reads_dotenv(tmp_path: Path) -> None:
    dotenv_path = tmp_path / ".env"
    dotenv_path.write_text("DOCSYNTH_AUTHOR=Dotenv Author\n", encoding="utf-8")

    config = load_config(dotenv_path=dotenv_path)

    assert config.author == "Dotenv Author"


def test_real_environment_beats_dotenv(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    dotenv_path = tmp_path / ".env"
    dotenv_path.write_text("DOCSYNTH_DEFAULT_TEMPLATE=tasks\n", encoding="utf-8")
    monkeypatch.setenv("DOCSYNTH_DEFAULT_TEMPLATE", "prd")

    assert load_config(dotenv_path=dotenv_path).default_template == "prd"


def test_missing_config_file_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(InvalidConfigError, match="does not exist"):
        load_config(config_path=tmp_path / "missing.yaml")


def test_non_mapping_config_is_rejected(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(InvalidConfigError, match="top-level mapping"):
        load_config(config_path=config_path)


def test_invalid_values_are_rejected(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("enable_document_updates: sometimes\n", encoding="utf-8")
    with pytest.raises(InvalidConfigError, match="Invalid configuration"):
        load_config(config_path=config_path)


def test_blank_default_template_is_rejected() -> None:
    with pytest.raises(InvalidConfigError, match="default_template"):
        load_config(overrides={"default_template": "  "})


def test_resolve_templates_dir(tmp_path: Path) -> None:
    relative = AppConfig(workspace_root=str(tmp_path), templates_dir="tpl")
    absolute = AppConfig(workspace_root="/elsewhere", templates_dir=str(tmp_path / "abs"))

    assert resolve_templates_dir(relative) == tmp_path / "tpl"
    assert resolve_templates_dir(absolute) == tmp_path / "abs"


def test_ensure_trace_root_creates_directory(tmp_path: Path) -> None:
    root = ensure_trace_root(str(tmp_path / "traces" / "nested"))
    assert root.is_dir()
