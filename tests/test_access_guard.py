"""Tests for the environment classifier and the access guard."""
import io
import itertools

import pytest

from llm_key_ring.keys.domains.context import ExecutionContext, classify
from llm_key_ring.keys.domains.errors import AccessDeniedError
from llm_key_ring.keys.domains.guard import Decision, Operation, authorize
from llm_key_ring.keys.domains.models import KeyKind


class FakeTTY(io.StringIO):
    def isatty(self):
        return True


class ClosedStream(io.StringIO):
    def isatty(self):
        raise ValueError("I/O operation on closed file")


ALL_CONTEXTS = [
    ExecutionContext(stdin, stdout)
    for stdin, stdout in itertools.product([True, False], repeat=2)
]
NON_INTERACTIVE = [c for c in ALL_CONTEXTS if not c.is_interactive]


class TestClassify:

    def test_both_terminals(self):
        ctx = classify(stdin=FakeTTY(), stdout=FakeTTY())
        assert ctx.stdin_is_interactive and ctx.stdout_is_interactive
        assert ctx.is_interactive

    def test_piped_stdout(self):
        ctx = classify(stdin=FakeTTY(), stdout=io.StringIO())
        assert ctx.stdin_is_interactive
        assert not ctx.stdout_is_interactive
        assert not ctx.is_interactive

    def test_closed_stream_is_not_interactive(self):
        ctx = classify(stdin=ClosedStream(), stdout=FakeTTY())
        assert not ctx.stdin_is_interactive

    def test_override_recorded(self):
        assert classify(stdin=io.StringIO(), stdout=io.StringIO(), override=True).has_explicit_override

    def test_reads_streams_at_call_time(self, monkeypatch):
        monkeypatch.setattr("sys.stdin", FakeTTY())
        monkeypatch.setattr("sys.stdout", FakeTTY())
        assert classify().is_interactive

        monkeypatch.setattr("sys.stdout", io.StringIO())
        assert not classify().is_interactive

    def test_missing_stream(self, monkeypatch):
        monkeypatch.setattr("sys.stdin", None)
        assert not classify(stdout=FakeTTY()).stdin_is_interactive


class TestDisplayRule:

    @pytest.mark.parametrize("context", NON_INTERACTIVE)
    @pytest.mark.parametrize("kind", list(KeyKind))
    def test_denied_when_not_interactive(self, context, kind):
        decision = authorize(Operation.DISPLAY, kind, context)
        assert not decision.allowed
        assert not decision.silent

    @pytest.mark.parametrize("kind", list(KeyKind))
    def test_allowed_when_interactive(self, kind, interactive):
        assert authorize(Operation.DISPLAY, kind, interactive).allowed

    @pytest.mark.parametrize("context", NON_INTERACTIVE)
    def test_override_allows_with_warning(self, context):
        decision = authorize(Operation.DISPLAY, KeyKind.RUNTIME, context, override=True)
        assert decision.allowed
        assert decision.warning

    def test_override_from_context(self):
        ctx = ExecutionContext(False, False, has_explicit_override=True)
        decision = authorize(Operation.DISPLAY, KeyKind.RUNTIME, ctx)
        assert decision.allowed and decision.warning

    def test_enforce_raises_with_guidance(self, piped):
        with pytest.raises(AccessDeniedError) as exc_info:
            authorize(Operation.DISPLAY, KeyKind.RUNTIME, piped).enforce()
        assert "non-interactive" in str(exc_info.value)
        assert "--force-plain" in str(exc_info.value)


class TestClipboardRule:

    def test_silently_skipped_without_terminal_stdout(self):
        ctx = ExecutionContext(stdin_is_interactive=True, stdout_is_interactive=False)
        decision = authorize(Operation.CLIPBOARD, KeyKind.RUNTIME, ctx)
        assert not decision.allowed
        assert decision.silent
        assert decision.enforce() is False

    def test_allowed_with_terminal_stdout(self, interactive):
        assert authorize(Operation.CLIPBOARD, KeyKind.RUNTIME, interactive).enforce() is True


class TestAdminRule:

    @pytest.mark.parametrize("operation", [Operation.LIST, Operation.TEMPLATE, Operation.INJECT])
    def test_admin_denied_on_bulk_paths(self, operation, interactive):
        assert not authorize(operation, KeyKind.ADMIN, interactive).allowed

    def test_list_allows_admin_when_elevated(self, interactive):
        assert authorize(Operation.LIST, KeyKind.ADMIN, interactive, elevated=True).allowed

    @pytest.mark.parametrize("operation", [Operation.TEMPLATE, Operation.INJECT])
    def test_elevation_does_not_open_template_or_inject(self, operation, interactive):
        assert not authorize(operation, KeyKind.ADMIN, interactive, elevated=True).allowed

    @pytest.mark.parametrize("operation", [Operation.LIST, Operation.TEMPLATE, Operation.INJECT, Operation.READ])
    @pytest.mark.parametrize("context", ALL_CONTEXTS)
    def test_runtime_allowed(self, operation, context):
        assert authorize(operation, KeyKind.RUNTIME, context).allowed

    def test_explicit_single_read_of_admin_allowed(self, piped):
        assert authorize(Operation.READ, KeyKind.ADMIN, piped).allowed


def test_decision_constructors():
    assert Decision.allow().allowed
    denied = Decision.deny("nope", silent=True)
    assert not denied.allowed and denied.silent and denied.reason == "nope"
