"""Tests for the command line interface and one-shot commands."""

import json
from pathlib import Path

from click.testing import CliRunner

from ycmd_client.cli import cli
from ycmd_client.commands.query_cmd import run_check, run_complete, run_goto, run_load_conf


def test_options_redacts_secret():
    runner = CliRunner()
    with runner.isolated_filesystem():
        result = runner.invoke(cli, ["options"])

    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data["hmac_secret"] == "<redacted>"
    assert data["semantic_triggers"] == {}


def test_options_reads_config():
    runner = CliRunner()
    with runner.isolated_filesystem():
        Path(".ycmd-client.toml").write_text(
            '[options]\nmax_diagnostics_to_display = 7\n', encoding="utf-8"
        )
        result = runner.invoke(cli, ["options"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["max_diagnostics_to_display"] == 7


def test_invalid_config_is_reported():
    runner = CliRunner()
    with runner.isolated_filesystem():
        Path("bad.toml").write_text("[server\n", encoding="utf-8")
        result = runner.invoke(cli, ["-c", "bad.toml", "options"])

    assert result.exit_code == 1
    assert "invalid TOML" in result.output


def test_unsupported_file_is_an_error():
    runner = CliRunner()
    with runner.isolated_filesystem():
        Path("notes.txt").write_text("hello", encoding="utf-8")
        result = runner.invoke(cli, ["check", "notes.txt"])

    assert result.exit_code == 1
    assert "no ycmd filetype" in result.output


def _source(tmp_path: Path) -> Path:
    path = tmp_path / "main.cpp"
    path.write_text("int main()\n{\n  return 0\n}\n", encoding="utf-8")
    return path


def test_check_reports_errors_as_json(make_runtime, opener, process_factory, tmp_path, capsys):
    path = _source(tmp_path)
    filepath = str(path.resolve())
    opener.responses["/event_notification"] = [
        {"kind": "ERROR", "text": "expected ';'", "location": {"filepath": filepath, "line_num": 3, "column_num": 11}},
        {"kind": "WARNING", "text": "in included file", "location": {"filepath": "/usr/include/x.h", "line_num": 1}},
    ]
    runtime = make_runtime()

    status = run_check(runtime.config, path, output_json=True, runtime=runtime)

    assert status == 1
    data = json.loads(capsys.readouterr().out)
    assert data == [
        {"filepath": filepath, "line": 3, "column": 11, "severity": "error", "message": "expected ';'"}
    ]
    assert process_factory.spawned[0].terminated
    assert not runtime.is_running()


def test_check_clean_file(make_runtime, opener, tmp_path, capsys):
    opener.responses["/event_notification"] = []
    runtime = make_runtime()

    assert run_check(runtime.config, _source(tmp_path), runtime=runtime) == 0
    assert "No diagnostics" in capsys.readouterr().out


def test_complete(make_runtime, opener, tmp_path, capsys):
    opener.responses["/completions"] = {
        "completions": [{"insertion_text": "push_back", "kind": "FUNCTION"}],
        "completion_start_column": 3,
    }
    runtime = make_runtime()

    assert run_complete(runtime.config, _source(tmp_path), 3, 3, runtime=runtime) == 0
    assert "push_back" in capsys.readouterr().out

    payload = opener.payloads("/completions")[0]
    assert payload["line_num"] == 3
    assert payload["column_num"] == 3
    assert opener.paths()[0] == "/event_notification"


def test_goto(make_runtime, opener, tmp_path, capsys):
    opener.responses["/run_completer_command"] = {"filepath": "/usr/include/stdio.h", "line_num": 10, "column_num": 1}
    runtime = make_runtime()

    assert run_goto(runtime.config, _source(tmp_path), 1, 5, runtime=runtime) == 0
    assert "stdio.h:10:1" in capsys.readouterr().out
    assert opener.payloads("/run_completer_command")[0]["command_arguments"] == ["GoTo"]


def test_goto_without_target(make_runtime, opener, tmp_path, capsys):
    opener.responses["/run_completer_command"] = []
    runtime = make_runtime()

    assert run_goto(runtime.config, _source(tmp_path), 1, 5, runtime=runtime) == 1
    assert "No definition" in capsys.readouterr().out


def test_load_conf(make_runtime, opener, tmp_path):
    conf = tmp_path / ".ycm_extra_conf.py"
    conf.write_text("def Settings(**kwargs):\n    return {}\n", encoding="utf-8")
    opener.responses["/load_extra_conf_file"] = True
    runtime = make_runtime()

    assert run_load_conf(runtime.config, conf, runtime=runtime) == 0
    assert opener.payloads("/load_extra_conf_file") == [{"filepath": str(conf.resolve())}]
