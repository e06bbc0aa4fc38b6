"""Tests for the command line interface.

Each invocation builds a fresh stack from the config file: a memory
cache over a file layer, so data persists between invocations only on
disk.
"""

import json

import pytest
import yaml
from click.testing import CliRunner

from layerstore import __version__
from layerstore.cli.main import cli


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture
def config_file(tmp_path, data_dir):
    """Config with a memory cache over a file layer."""
    path = tmp_path / "layerstore.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "key_field": "id",
                "layers": [
                    {"type": "memory"},
                    {"type": "file", "path": str(data_dir)},
                ],
            }
        )
    )
    return path


@pytest.fixture
def invoke(cli_runner, config_file):
    """Run a command against the test config."""

    def run(*args):
        return cli_runner.invoke(cli, ["--config", str(config_file), *args])

    return run


class TestCLIEntryPoint:
    """Test global options."""

    def test_help(self, cli_runner):
        result = cli_runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        for command in ["keys", "get", "list", "add", "update", "delete", "sync"]:
            assert command in result.output

    def test_version(self, cli_runner):
        result = cli_runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert f"layerstore version {__version__}" in result.output

    def test_invalid_config_file(self, cli_runner, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("layers: [unclosed")

        result = cli_runner.invoke(cli, ["--config", str(path), "keys"])

        assert result.exit_code == 1
        assert "Error loading config file" in result.output

    def test_missing_config_file(self, cli_runner, tmp_path):
        result = cli_runner.invoke(cli, ["--config", str(tmp_path / "nope.yaml"), "keys"])

        assert result.exit_code == 2


class TestEntryCommands:
    """Test create, read, update and delete commands."""

    def test_add_and_get(self, invoke, data_dir):
        result = invoke("add", '{"id": "1", "name": "Ada"}')

        assert result.exit_code == 0
        assert "Created 1" in result.output
        assert (data_dir / "1.json").is_file()

        result = invoke("get", "1")

        assert result.exit_code == 0
        assert json.loads(result.output) == {"id": "1", "name": "Ada"}

    def test_get_yaml(self, invoke):
        invoke("add", '{"id": "1", "name": "Ada"}')

        result = invoke("get", "1", "--format", "yaml")

        assert result.exit_code == 0
        assert yaml.safe_load(result.output) == {"id": "1", "name": "Ada"}

    def test_add_duplicate(self, invoke):
        invoke("add", '{"id": "1"}')

        result = invoke("add", '{"id": "1"}')

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "already exists" in result.output

    def test_add_invalid_json(self, invoke):
        result = invoke("add", "{not json")

        assert result.exit_code == 2
        assert "Invalid JSON" in result.output

    def test_add_requires_object(self, invoke):
        result = invoke("add", "[1, 2]")

        assert result.exit_code == 2
        assert "JSON object" in result.output

    def test_add_without_key_field(self, invoke):
        result = invoke("add", '{"name": "Nameless"}')

        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_get_missing(self, invoke):
        result = invoke("get", "missing")

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_update(self, invoke):
        invoke("add", '{"id": "1", "name": "Ada"}')

        result = invoke("update", '{"id": "1", "name": "Ada Lovelace"}')

        assert result.exit_code == 0
        assert "Updated 1" in result.output
        assert json.loads(invoke("get", "1").output)["name"] == "Ada Lovelace"

    def test_update_missing(self, invoke):
        result = invoke("update", '{"id": "1"}')

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_delete(self, invoke, data_dir):
        invoke("add", '{"id": "1"}')

        result = invoke("delete", "1")

        assert result.exit_code == 0
        assert "Deleted 1" in result.output
        assert not (data_dir / "1.json").exists()

    def test_delete_missing(self, invoke):
        result = invoke("delete", "1")

        assert result.exit_code == 1
        assert "delete failed" in result.output

    def test_integer_keys(self, cli_runner, tmp_path):
        """Keys on the command line follow the configured key type."""
        path = tmp_path / "int.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "key_type": "int",
                    "layers": [{"type": "file", "path": str(tmp_path / "ints")}],
                }
            )
        )

        def run(*args):
            return cli_runner.invoke(cli, ["--config", str(path), *args])

        assert run("add", '{"id": 7, "name": "Seven"}').exit_code == 0
        assert json.loads(run("get", "7").output) == {"id": 7, "name": "Seven"}

        result = run("get", "seven")
        assert result.exit_code == 1
        assert "Invalid int key" in result.output


class TestListingCommands:
    """Test keys, list and sync."""

    def test_keys(self, invoke):
        invoke("add", '{"id": "b"}')
        invoke("add", '{"id": "a"}')

        result = invoke("keys")

        assert result.exit_code == 0
        assert result.output.split() == ["a", "b"]

    def test_list_empty(self, invoke):
        result = invoke("list")

        assert result.exit_code == 0
        assert "No entries found" in result.output

    def test_list_table(self, invoke):
        invoke("add", '{"id": "1", "name": "Ada"}')
        invoke("add", '{"id": "2", "name": "Grace"}')

        result = invoke("list")

        assert result.exit_code == 0
        assert "Entries (2)" in result.output
        assert "Ada" in result.output
        assert "Grace" in result.output

    def test_list_json(self, invoke):
        invoke("add", '{"id": "1", "name": "Ada"}')

        result = invoke("list", "--format", "json")

        assert result.exit_code == 0
        assert json.loads(result.output) == [{"id": "1", "name": "Ada"}]

    def test_list_yaml(self, invoke):
        invoke("add", '{"id": "1", "name": "Ada"}')

        result = invoke("list", "--format", "yaml")

        assert yaml.safe_load(result.output) == [{"id": "1", "name": "Ada"}]

    def test_sync(self, invoke):
        invoke("add", '{"id": "1"}')
        invoke("add", '{"id": "2"}')

        result = invoke("sync")

        assert result.exit_code == 0
        assert "Synchronized 2 entries across 2 layer(s)" in result.output
