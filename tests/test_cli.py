"""Tests for the command line interface."""

import json
from pathlib import Path

from click.testing import CliRunner

from routemeta.cli import main

CONTROLLER = '''
from routemeta.runtime import Get, Route, Security

@Route("users")
@Security("api_key")
class UsersController:
    @Get("{user_id}")
    def get_user(self, user_id: int) -> str:
        pass
'''


def test_metadata_writes_json():
    runner = CliRunner()
    with runner.isolated_filesystem():
        Path("users.py").write_text(CONTROLLER)
        result = runner.invoke(main, ["metadata", "-e", "users.py", "-o", "build/metadata.json"])

        assert result.exit_code == 0, result.output
        data = json.loads(Path("build/metadata.json").read_text())

    assert data["controllers"][0]["name"] == "UsersController"
    assert data["controllers"][0]["methods"][0]["security"] == [{"api_key": []}]


def test_metadata_prints_summary():
    runner = CliRunner()
    with runner.isolated_filesystem():
        Path("users.py").write_text(CONTROLLER)
        result = runner.invoke(main, ["metadata", "--entry-file", "users.py"])

    assert result.exit_code == 0, result.output
    assert "Controllers (1 found)" in result.output
    assert "get_user" in result.output


def test_metadata_reports_generation_errors():
    runner = CliRunner()
    with runner.isolated_filesystem():
        Path("users.py").write_text('@Route("a")\n@Route("b")\nclass Broken:\n    pass\n')
        result = runner.invoke(main, ["metadata", "-e", "users.py"])

    assert result.exit_code == 1
    assert "Only one Route decorator" in result.output


def test_routes_from_config():
    runner = CliRunner()
    with runner.isolated_filesystem():
        Path("users.py").write_text(CONTROLLER)
        Path("routemeta.yaml").write_text("entryFile: users.py\nroutes:\n  routesDir: generated\n")
        result = runner.invoke(main, ["routes"])

        assert result.exit_code == 0, result.output
        content = Path("generated/routes.py").read_text()

    assert "from users import UsersController" in content
    assert "@router.get('/users/{user_id}', status_code=200)" in content


def test_missing_config():
    runner = CliRunner()
    with runner.isolated_filesystem():
        result = runner.invoke(main, ["routes", "-c", "missing.yaml"])

    assert result.exit_code == 1
    assert "Config file not found" in result.output
