"""
Tests for utility helpers used for data directory and connection resolution.
"""

from pathlib import Path

import pytest
from sqlalchemy.engine import make_url

from utils import ensure_data_dir, get_data_dir, prompt_user_choice, resolve_connection_string, resolve_log_path


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("BUDGET_APP_DATA_DIR", raising=False)
    monkeypatch.delenv("BUDGET_APP_DB_URL", raising=False)


def test_ensure_data_dir_creates_directory(tmp_path):
    """ensure_data_dir should create the configured directory when missing."""
    config = {"persistence": {"data_dir": str(tmp_path / "ledger_data")}}
    data_dir = ensure_data_dir(config)

    assert data_dir.is_dir()
    assert data_dir == tmp_path / "ledger_data"


def test_data_dir_env_override(monkeypatch, tmp_path):
    monkeypatch.setenv("BUDGET_APP_DATA_DIR", str(tmp_path / "from_env"))
    config = {"persistence": {"data_dir": str(tmp_path / "from_config")}}
    assert get_data_dir(config) == tmp_path / "from_env"


def test_relative_data_dir_is_under_project_root():
    data_dir = get_data_dir({"persistence": {"data_dir": "some/where"}})
    assert data_dir.is_absolute()
    assert data_dir.parts[-2:] == ("some", "where")


def test_resolve_connection_string_default(tmp_path):
    """resolve_connection_string should build a sqlite URL under the data dir."""
    data_dir = tmp_path / "app_data"
    connection_string = resolve_connection_string({"persistence": {"data_dir": str(data_dir)}})
    url = make_url(connection_string)

    assert url.drivername.startswith("sqlite")
    assert Path(url.database) == data_dir / "ledger.db"
    assert data_dir.exists()


def test_resolve_connection_string_from_config(tmp_path):
    db_path = tmp_path / "nested" / "mine.db"
    connection = f"sqlite:///{db_path.as_posix()}"
    assert resolve_connection_string({"persistence": {"connection_string": connection}}) == connection
    assert db_path.parent.exists()


def test_resolve_connection_string_env_override(monkeypatch, tmp_path):
    """Environment variable should take precedence over config/defaults."""
    db_path = tmp_path / "env_override" / "ledger.db"
    env_connection = f"sqlite:///{db_path.as_posix()}"
    monkeypatch.setenv("BUDGET_APP_DB_URL", env_connection)

    connection_string = resolve_connection_string({"persistence": {"connection_string": "sqlite:///ignored.db"}})
    assert connection_string == env_connection
    assert db_path.parent.exists()


def test_resolve_log_path_creates_parent(tmp_path):
    log_path = resolve_log_path(str(tmp_path / "logs" / "app.log"))
    assert log_path.parent.is_dir()


class TestPromptUserChoice:
    options = {"y": "yes", "n": "no"}

    def test_non_interactive_returns_default(self, monkeypatch):
        monkeypatch.setattr("sys.stdin", None)
        assert prompt_user_choice("Continue?", self.options, default="n") == "n"

    def test_input_func_choice(self):
        assert prompt_user_choice("Continue?", self.options, default="n", input_func=lambda _: "Y") == "y"

    def test_blank_input_returns_default(self):
        assert prompt_user_choice("Continue?", self.options, default="n", input_func=lambda _: "  ") == "n"

    def test_invalid_input_reprompts(self):
        answers = iter(["maybe", "y"])
        assert prompt_user_choice("Continue?", self.options, default="n", input_func=lambda _: next(answers)) == "y"

    def test_bad_arguments(self):
        with pytest.raises(ValueError):
            prompt_user_choice("Continue?", {}, default="n")
        with pytest.raises(ValueError):
            prompt_user_choice("Continue?", self.options, default="x")
