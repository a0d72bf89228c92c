"""End-to-end tests for the lkr command line."""
import json
import stat
from unittest import mock

import pytest

from llm_key_ring.cli import main as cli
from llm_key_ring.keys.domains import injector
from llm_key_ring.keys.domains.context import ExecutionContext
from llm_key_ring.keys.domains.models import KeyKind
from llm_key_ring.keys.domains.store import MemoryStore


@pytest.fixture
def cli_store(monkeypatch, temp_home):
    s = MemoryStore()
    s.put("openai:prod", "sk-test-1234")
    s.put("anthropic:main", "sk-ant-test-key-87654321")
    monkeypatch.setattr(cli, "_open_store", lambda settings: s)
    return s


@pytest.fixture
def cli_escrow(monkeypatch, escrow):
    monkeypatch.setattr(cli, "_open_escrow", lambda settings: escrow)
    return escrow


def _context(monkeypatch, interactive):
    def fake_classify(stdin=None, stdout=None, override=False):
        return ExecutionContext(interactive, interactive, override)
    monkeypatch.setattr(cli, "classify", fake_classify)


def run(argv):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(argv)
    return exc_info.value.code


class TestGet:

    def test_interactive_get_masks_and_copies(self, cli_store, cli_escrow, memory_clipboard, monkeypatch, capsys):
        _context(monkeypatch, interactive=True)

        assert run(["get", "openai:prod"]) == 0

        captured = capsys.readouterr()
        assert "sk-t...1234" in captured.out
        assert "sk-test-1234" not in captured.out
        assert "Copied to clipboard (clears in 30s)" in captured.err
        assert memory_clipboard.content == b"sk-test-1234"

    def test_interactive_show_leaves_clipboard_alone(self, cli_store, cli_escrow, memory_clipboard, scheduled, monkeypatch, capsys):
        _context(monkeypatch, interactive=True)

        assert run(["get", "openai:prod", "--show"]) == 0

        captured = capsys.readouterr()
        assert captured.out == "sk-test-1234\n"
        assert "Copied to clipboard" not in captured.err
        assert memory_clipboard.content == b""
        assert scheduled == []

    def test_piped_show_blocked(self, cli_store, cli_escrow, memory_clipboard, monkeypatch, capsys):
        _context(monkeypatch, interactive=False)

        assert run(["get", "openai:prod", "--show"]) == 2

        captured = capsys.readouterr()
        assert "sk-test-1234" not in captured.out
        assert "sk-test-1234" not in captured.err
        assert memory_clipboard.content == b""

    def test_piped_plain_blocked(self, cli_store, cli_escrow, monkeypatch, capsys):
        _context(monkeypatch, interactive=False)

        assert run(["get", "openai:prod", "--plain"]) == 2
        assert capsys.readouterr().out == ""

    def test_force_plain(self, cli_store, cli_escrow, memory_clipboard, monkeypatch, capsys):
        _context(monkeypatch, interactive=False)

        assert run(["get", "openai:prod", "--force-plain"]) == 0

        captured = capsys.readouterr()
        assert captured.out == "sk-test-1234"
        assert memory_clipboard.content == b""

    def test_json(self, cli_store, cli_escrow, monkeypatch, capsys):
        _context(monkeypatch, interactive=True)

        assert run(["get", "openai:prod", "--json"]) == 0

        data = json.loads(capsys.readouterr().out)
        assert data["value"] == "sk-t...1234"
        assert data["clipboard"] is True

    def test_not_found_suggests(self, cli_store, cli_escrow, monkeypatch, capsys):
        _context(monkeypatch, interactive=True)

        assert run(["get", "openai:prd"]) == 1

        err = capsys.readouterr().err
        assert "Key not found: openai:prd" in err
        assert "Did you mean?" in err
        assert "openai:prod" in err

    def test_invalid_name(self, cli_store, capsys):
        assert run(["get", "OpenAI:prod"]) == 2
        assert "Error" in capsys.readouterr().err


class TestSet:

    def test_set_prompts_for_value(self, cli_store, monkeypatch, capsys):
        monkeypatch.setattr(cli.getpass, "getpass", lambda prompt, stream=None: "  gsk-new-value  ")

        assert run(["set", "groq:dev", "--kind", "admin"]) == 0

        with cli_store.fetch("groq:dev") as envelope:
            assert envelope.expose_secret() == "gsk-new-value"
            assert envelope.kind == KeyKind.ADMIN
        assert "gsk-new-value" not in capsys.readouterr().err

    def test_set_existing_without_force(self, cli_store, monkeypatch, capsys):
        monkeypatch.setattr(cli.getpass, "getpass", lambda prompt, stream=None: "sk-other")

        assert run(["set", "openai:prod"]) == 1
        assert "already exists" in capsys.readouterr().err

    def test_set_empty_value(self, cli_store, monkeypatch):
        monkeypatch.setattr(cli.getpass, "getpass", lambda prompt, stream=None: "   ")
        assert run(["set", "groq:dev"]) == 2


class TestList:

    def test_list_hides_admin(self, cli_store, capsys):
        cli_store.put("openai:admin", "sk-admin-secret-000", KeyKind.ADMIN)

        assert run(["list"]) == 0

        out = capsys.readouterr().out
        assert "openai:prod" in out
        assert "openai:admin" not in out
        assert "sk-test-1234" not in out

    def test_list_all_json(self, cli_store, capsys):
        cli_store.put("openai:admin", "sk-admin-secret-000", KeyKind.ADMIN)

        assert run(["ls", "--all", "--json"]) == 0

        names = [e["name"] for e in json.loads(capsys.readouterr().out)]
        assert names == ["anthropic:main", "openai:admin", "openai:prod"]

    def test_list_empty(self, monkeypatch, temp_home, capsys):
        monkeypatch.setattr(cli, "_open_store", lambda settings: MemoryStore())
        assert run(["list"]) == 0
        assert "No keys stored" in capsys.readouterr().err


class TestRm:

    def test_rm_force(self, cli_store):
        assert run(["rm", "openai:prod", "--force"]) == 0
        assert not cli_store.exists("openai:prod")

    def test_rm_cancelled(self, cli_store, monkeypatch, capsys):
        monkeypatch.setattr(cli, "_confirm", lambda prompt: False)

        assert run(["rm", "openai:prod"]) == 0

        assert cli_store.exists("openai:prod")
        assert "Cancelled" in capsys.readouterr().err


class TestGen:

    def test_gen_writes_owner_only_file(self, cli_store, tmp_path, capsys):
        template = tmp_path / ".env.example"
        template.write_text("OPENAI_API_KEY=\nDATABASE_URL=postgres://localhost/db\n")
        output = tmp_path / ".env"

        assert run(["gen", str(template), "-o", str(output)]) == 0

        assert output.read_text() == "OPENAI_API_KEY=sk-test-1234\nDATABASE_URL=postgres://localhost/db\n"
        assert stat.S_IMODE(output.stat().st_mode) == 0o600
        err = capsys.readouterr().err
        assert "1 resolved, 1 unresolved" in err
        assert "sk-test-1234" not in err

    def test_gen_strict_fails(self, cli_store, tmp_path, capsys):
        template = tmp_path / ".env.example"
        template.write_text("REDIS_URL=redis://localhost\n")

        assert run(["gen", str(template), "--strict"]) == 1

        assert not (tmp_path / ".env").exists()
        assert "REDIS_URL" in capsys.readouterr().err

    def test_gen_declined_overwrite(self, cli_store, tmp_path, monkeypatch):
        template = tmp_path / ".env.example"
        template.write_text("OPENAI_API_KEY=\n")
        (tmp_path / ".env").write_text("keep")
        monkeypatch.setattr(cli, "_confirm", lambda prompt: False)

        assert run(["gen", str(template)]) == 0
        assert (tmp_path / ".env").read_text() == "keep"

    def test_gen_admin_reference_denied(self, cli_store, tmp_path):
        cli_store.put("openai:admin", "sk-admin-secret-000", KeyKind.ADMIN)
        template = tmp_path / ".mcp.json.template"
        template.write_text('{"key": "{{secret:openai:admin}}"}')

        assert run(["gen", str(template)]) == 2
        assert not (tmp_path / ".mcp.json").exists()


class TestExec:

    def test_exec_passes_exit_code(self, cli_store, monkeypatch):
        seen = {}

        def fake_popen(command, env=None, **kwargs):
            seen["command"] = command
            seen["value"] = env.get("OPENAI_API_KEY")
            child = mock.Mock()
            child.wait.return_value = 7
            return child

        monkeypatch.setattr(injector.subprocess, "Popen", fake_popen)

        assert run(["exec", "-k", "openai:prod", "--", "python", "app.py"]) == 7
        assert seen == {"command": ["python", "app.py"], "value": "sk-test-1234"}

    def test_exec_child_killed_by_signal(self, cli_store, monkeypatch):
        child = mock.Mock()
        child.wait.return_value = -9
        monkeypatch.setattr(injector.subprocess, "Popen", mock.Mock(return_value=child))

        assert run(["exec", "-k", "openai:prod", "--", "python", "app.py"]) == 137

    def test_exec_without_command(self, cli_store, capsys):
        assert run(["exec"]) == 2
        assert "No command given" in capsys.readouterr().err

    def test_exec_command_not_found(self, cli_store, monkeypatch):
        monkeypatch.setattr(injector.subprocess, "Popen", mock.Mock(side_effect=FileNotFoundError()))
        assert run(["exec", "-k", "openai:prod", "--", "no-such-program"]) == 127

    def test_exec_admin_key_denied(self, cli_store, monkeypatch, capsys):
        cli_store.put("openai:admin", "sk-admin-secret-000", KeyKind.ADMIN)
        popen = mock.Mock()
        monkeypatch.setattr(injector.subprocess, "Popen", popen)

        assert run(["exec", "-k", "openai:admin", "--", "env"]) == 2

        popen.assert_not_called()
        assert "sk-admin-secret-000" not in capsys.readouterr().err


class TestMisc:

    def test_version(self, capsys):
        assert run(["version"]) == 0
        assert "llm-key-ring" in capsys.readouterr().out

    def test_no_command(self, capsys):
        assert run([]) == 2

    def test_config_without_subcommand(self, temp_home):
        assert run(["config"]) == 2
