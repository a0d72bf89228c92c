"""Tests for generating files from templates."""
import pytest

from llm_key_ring.keys.domains.errors import (
    AccessDeniedError,
    OutputExistsError,
    TemplateError,
    TemplateParseError,
    UnresolvedPlaceholdersError,
)
from llm_key_ring.keys.domains.models import KeyKind
from llm_key_ring.keys.workflows import template_operations
from llm_key_ring.keys.workflows.template_operations import derive_output_path, template_generate


@pytest.fixture(autouse=True)
def no_git(monkeypatch):
    monkeypatch.setattr(template_operations, "check_ignored", lambda path: None)


class TestDeriveOutputPath:

    @pytest.mark.parametrize("name,expected", [
        (".env.example", ".env"),
        (".mcp.json.template", ".mcp.json"),
        ("config.yml.example", "config.yml"),
    ])
    def test_suffixes(self, tmp_path, name, expected):
        assert derive_output_path(tmp_path / name) == tmp_path / expected

    @pytest.mark.parametrize("name", ["template.txt", ".example"])
    def test_not_derivable(self, tmp_path, name):
        with pytest.raises(TemplateError) as exc_info:
            derive_output_path(tmp_path / name)
        assert "-o" in str(exc_info.value)


class TestTemplateGenerate:

    def test_env_end_to_end(self, store, interactive, tmp_path):
        template = tmp_path / ".env.example"
        template.write_text("# keys\nOPENAI_API_KEY=your-key\nDATABASE_URL=postgres://localhost/db\n")

        result = template_generate(store, template, context=interactive)

        output = tmp_path / ".env"
        assert result.output_path == output
        assert output.read_text() == (
            "# keys\nOPENAI_API_KEY=sk-test-openai-key-12345678\nDATABASE_URL=postgres://localhost/db\n"
        )
        assert output.stat().st_mode & 0o777 == 0o600
        assert result.report.unresolved == ["DATABASE_URL"]

    def test_json_end_to_end(self, store, interactive, tmp_path):
        template = tmp_path / ".mcp.json.template"
        template.write_text('{"env": {"ANTHROPIC_API_KEY": "{{secret:anthropic:main}}"}}\n')

        template_generate(store, template, context=interactive)

        assert (tmp_path / ".mcp.json").read_text() == '{"env": {"ANTHROPIC_API_KEY": "sk-ant-test-key-87654321"}}\n'

    def test_missing_template(self, store, interactive, tmp_path):
        with pytest.raises(TemplateError) as exc_info:
            template_generate(store, tmp_path / ".env.example", context=interactive)
        assert "not found" in str(exc_info.value)

    def test_existing_output_refused(self, store, interactive, tmp_path):
        template = tmp_path / ".env.example"
        template.write_text("OPENAI_API_KEY=\n")
        (tmp_path / ".env").write_text("keep me")

        with pytest.raises(OutputExistsError):
            template_generate(store, template, context=interactive)

        assert (tmp_path / ".env").read_text() == "keep me"

    def test_force_overwrites(self, store, interactive, tmp_path):
        template = tmp_path / ".env.example"
        template.write_text("OPENAI_API_KEY=\n")
        (tmp_path / ".env").write_text("old")

        template_generate(store, template, force=True, context=interactive)

        assert (tmp_path / ".env").read_text() == "OPENAI_API_KEY=sk-test-openai-key-12345678\n"

    def test_explicit_output_path(self, store, interactive, tmp_path):
        template = tmp_path / "settings.txt"
        template.write_text("OPENAI_API_KEY=\n")

        result = template_generate(store, template, tmp_path / "out.env", context=interactive)

        assert result.output_path == tmp_path / "out.env"

    def test_strict_writes_nothing(self, store, interactive, tmp_path):
        template = tmp_path / ".env.example"
        template.write_text("OPENAI_API_KEY=\nREDIS_URL=redis://localhost\n")

        with pytest.raises(UnresolvedPlaceholdersError) as exc_info:
            template_generate(store, template, strict=True, context=interactive)

        assert exc_info.value.placeholders == ["REDIS_URL"]
        assert not (tmp_path / ".env").exists()

    def test_parse_error_writes_nothing(self, store, interactive, tmp_path):
        template = tmp_path / ".mcp.json.template"
        template.write_text('{"key": "{{secret:openai:prod"}')

        with pytest.raises(TemplateParseError):
            template_generate(store, template, context=interactive)

        assert not (tmp_path / ".mcp.json").exists()

    def test_admin_reference_writes_nothing(self, store, interactive, tmp_path):
        store.put("openai:admin", "sk-admin-secret-000", KeyKind.ADMIN)
        template = tmp_path / ".mcp.json.template"
        template.write_text('{"key": "{{secret:openai:admin}}"}')

        with pytest.raises(AccessDeniedError):
            template_generate(store, template, context=interactive)

        assert not (tmp_path / ".mcp.json").exists()

    def test_gitignore_warning(self, store, interactive, tmp_path, monkeypatch, caplog):
        monkeypatch.setattr(template_operations, "check_ignored", lambda path: False)
        template = tmp_path / ".env.example"
        template.write_text("OPENAI_API_KEY=\n")

        with caplog.at_level("WARNING"):
            result = template_generate(store, template, context=interactive)

        assert result.ignored is False
        assert "NOT in .gitignore" in caplog.text

    def test_buffer_wiped_after_write(self, store, interactive, tmp_path, monkeypatch):
        captured = []
        original = template_operations.write_atomic

        def spy(path, contents, mode=0o600):
            captured.append(contents)
            original(path, contents, mode)

        monkeypatch.setattr(template_operations, "write_atomic", spy)
        template = tmp_path / ".env.example"
        template.write_text("OPENAI_API_KEY=\n")

        template_generate(store, template, context=interactive)

        assert set(captured[0]) == {0}
