"""CLI entrypoint for llm-key-ring."""
import sys
import argparse
import getpass
import json
import logging
from pathlib import Path

from llm_key_ring import __version__
from llm_key_ring.keys.domains.clipboard import CLEAR_AFTER_SECONDS, ClipboardEscrow
from llm_key_ring.keys.domains.config_loader import (
    Settings,
    clear_preference,
    default_config_path,
    get_preference,
    load_config,
    set_preference,
)
from llm_key_ring.keys.domains.context import classify
from llm_key_ring.keys.domains.errors import (
    AccessDeniedError,
    KeyNotFoundError,
    LkrError,
    ValidationError,
)
from llm_key_ring.keys.domains.keychain_client import KeychainStore
from llm_key_ring.keys.domains.models import KeyKind
from llm_key_ring.keys.domains.providers import ProviderTable
from .validators import validate_key_name, validate_key_value

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2

# Configure logging to stderr
logging.basicConfig(
    level=logging.WARNING,
    format="%(message)s",
    stream=sys.stderr
)
logger = logging.getLogger(__name__)


def _load_settings() -> Settings:
    return load_config()


def _open_store(settings: Settings):
    return KeychainStore(settings.service)


def _open_escrow(settings: Settings) -> ClipboardEscrow:
    return ClipboardEscrow(ttl=CLEAR_AFTER_SECONDS)


def _confirm(prompt: str) -> bool:
    print(prompt, end="", file=sys.stderr, flush=True)
    answer = sys.stdin.readline()
    return answer.strip().lower() == "y"


def cmd_version(args):
    """Show version information."""
    print(f"llm-key-ring {__version__}")


def cmd_config_set_path(args):
    """Set config file path preference."""
    config_path = Path(args.path).resolve()

    if not config_path.exists():
        print(f"Error: Config file does not exist: {config_path}", file=sys.stderr)
        sys.exit(EXIT_FAILURE)

    if not config_path.is_file():
        print(f"Error: Path is not a file: {config_path}", file=sys.stderr)
        sys.exit(EXIT_FAILURE)

    set_preference("config_path", str(config_path))
    print(f"Config path set to: {config_path}")


def cmd_config_show(args):
    """Show current config file path."""
    config_path_pref = get_preference("config_path")

    if config_path_pref:
        config_path = Path(config_path_pref)
        if config_path.exists():
            print(f"Config path: {config_path}")
        else:
            print(f"Config path (from preference, but file not found): {config_path}")
        print("Source: preference")
    else:
        default_config = default_config_path()
        print(f"Config path: {default_config}")
        if default_config.exists():
            print("Source: default")
        else:
            print("Source: default (file not found, built-in defaults apply)")


def cmd_config_clear(args):
    """Clear config path preference."""
    clear_preference("config_path")
    print(f"Config path preference cleared. Will use default: {default_config_path()}")


def cmd_set(args):
    """Store a key. The value is prompted for, never taken from argv."""
    from llm_key_ring.keys.workflows.key_operations import store_set

    ident = validate_key_name(args.name)
    kind = KeyKind.parse(args.kind)

    value = getpass.getpass(f"Enter API key for {ident}: ", stream=sys.stderr)
    validate_key_value(value)

    store = _open_store(_load_settings())
    store_set(store, str(ident), value, kind, force=args.force)
    print(f"Stored {ident} (kind: {kind})", file=sys.stderr)


def cmd_get(args):
    """Retrieve a key: masked + clipboard by default."""
    from llm_key_ring.keys.workflows.key_operations import Sink, store_get

    ident = validate_key_name(args.name)
    context = classify(override=args.force_plain)

    if args.plain or args.force_plain:
        sink = Sink.PLAIN
    elif args.json:
        sink = Sink.JSON
    elif args.show:
        sink = Sink.DISPLAY
    else:
        sink = Sink.CLIPBOARD

    settings = _load_settings()
    store = _open_store(settings)
    escrow = _open_escrow(settings) if sink != Sink.PLAIN else None

    result = store_get(store, str(ident), sink=sink, context=context, escrow=escrow, show=args.show)
    if result.clipboard:
        print(f"Copied to clipboard (clears in {CLEAR_AFTER_SECONDS}s)", file=sys.stderr)


def cmd_list(args):
    """List stored keys with masked values."""
    from llm_key_ring.keys.workflows.key_operations import store_list

    store = _open_store(_load_settings())
    entries = store_list(store, include_admin=args.all)

    if args.json:
        print(json.dumps([e.to_dict() for e in entries], indent=2))
        return

    if not entries:
        print("No keys stored.\n", file=sys.stderr)
        print("  Get started:", file=sys.stderr)
        print("    lkr set openai:prod", file=sys.stderr)
        print("    lkr set anthropic:main", file=sys.stderr)
        return

    print(f"  {'Provider':<14} {'Name':<20} {'Kind':<10} Value")
    print(f"  {'-' * 60}")
    for entry in entries:
        print(f"  {entry.provider:<14} {entry.name:<20} {str(entry.kind):<10} {entry.masked_value}")
    print(f"\n  {len(entries)} key(s) stored in keychain")


def cmd_rm(args):
    """Remove a key."""
    from llm_key_ring.keys.workflows.key_operations import store_delete

    ident = validate_key_name(args.name)
    if not args.force and not _confirm(f"Remove key '{ident}'? [y/N] "):
        print("Cancelled.", file=sys.stderr)
        return

    store_delete(_open_store(_load_settings()), str(ident))
    print(f"Removed {ident}", file=sys.stderr)


def cmd_gen(args):
    """Generate a config file from a template."""
    from llm_key_ring.keys.workflows.template_operations import derive_output_path, template_generate

    settings = _load_settings()
    store = _open_store(settings)
    providers = ProviderTable.default(settings.providers)

    output = Path(args.output) if args.output else derive_output_path(args.template)
    force = args.force
    if output.exists() and not force:
        if not _confirm(f"Output file '{output}' already exists. Overwrite? [y/N] "):
            print("Cancelled.", file=sys.stderr)
            return
        force = True

    result = template_generate(
        store,
        args.template,
        output,
        force=force,
        strict=args.strict,
        providers=providers,
    )
    report = result.report

    if report.resolved:
        print("  Resolved from keychain:", file=sys.stderr)
        for entry in report.resolved:
            print(f"    {entry.placeholder:<24} <- {entry.identifier}", file=sys.stderr)

    if report.unresolved:
        print("  Kept as-is (no matching key):", file=sys.stderr)
        for placeholder in report.unresolved:
            print(f"    {placeholder}", file=sys.stderr)

    print(
        f"\n  Generated: {result.output_path} "
        f"({len(report.resolved)} resolved, {len(report.unresolved)} unresolved)",
        file=sys.stderr
    )


def cmd_exec(args):
    """Run a command with keys injected into its environment."""
    from llm_key_ring.keys.workflows.exec_operations import exec_with_injected_keys

    command = list(args.exec_command)
    if command and command[0] == "--":
        command = command[1:]
    if not command:
        print("Error: No command given. Usage: lkr exec [-k NAME ...] -- <command> [args...]", file=sys.stderr)
        sys.exit(EXIT_USAGE)

    for name in args.keys or []:
        validate_key_name(name)

    settings = _load_settings()
    store = _open_store(settings)
    try:
        code = exec_with_injected_keys(
            store,
            command,
            keys=args.keys,
            providers=ProviderTable.default(settings.providers),
        )
    except FileNotFoundError:
        print(f"Error: command not found: {command[0]}", file=sys.stderr)
        sys.exit(127)
    sys.exit(code)


def _report_not_found(error: KeyNotFoundError):
    from llm_key_ring.keys.workflows.key_operations import suggest_similar

    try:
        suggestions = suggest_similar(_open_store(_load_settings()), error.name)
    except LkrError:
        suggestions = []
    if suggestions:
        print("\n  Did you mean?", file=sys.stderr)
        for name in suggestions:
            print(f"    {name}", file=sys.stderr)
    print("\n  Run `lkr list` to see all stored keys.", file=sys.stderr)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lkr",
        description="LLM Key Ring - manage LLM API keys via the OS keychain",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  lkr set openai:prod
  lkr get openai:prod
  lkr list
  lkr rm openai:prod
  lkr gen .env.example -o .env
  lkr exec -k openai:prod -- python app.py

Exit codes:
  0 - Success
  1 - Runtime error (key not found, keychain locked, write failure, etc.)
  2 - Usage error or blocked by the access guard (e.g. --show in a pipe)

Environment variables:
  LKR_KEYCHAIN_SERVICE - keychain service name (overrides config file)

Configuration:
  Default location: ~/.config/llm-key-ring/config.yml (optional)
  Custom path: Set with 'lkr config set-path <path>'
        """
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show informational log messages on stderr"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("version", help="Show version information")

    # config command
    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
        description="Manage llm-key-ring configuration"
    )
    config_subparsers = config_parser.add_subparsers(dest="config_command")
    config_set_path_parser = config_subparsers.add_parser(
        "set-path",
        help="Set config file path",
        description="Store the absolute path to your config file in ~/.config/llm-key-ring/preferences.json"
    )
    config_set_path_parser.add_argument("path", help="Path to config file")
    config_subparsers.add_parser("show", help="Show current config path")
    config_subparsers.add_parser("clear", help="Clear config path preference")

    # set
    set_parser = subparsers.add_parser(
        "set",
        help="Store an API key in the keychain",
        description="Store an API key. The value is read from a hidden prompt, never from arguments."
    )
    set_parser.add_argument("name", help="Key name in provider:label format (e.g. openai:prod)")
    set_parser.add_argument(
        "--kind",
        default="runtime",
        choices=["runtime", "admin"],
        help="Key kind: runtime (default) or admin"
    )
    set_parser.add_argument("--force", action="store_true", help="Overwrite existing key without confirmation")

    # get
    get_parser = subparsers.add_parser(
        "get",
        help="Retrieve an API key (copies to clipboard)",
        description="""
Retrieve an API key. By default the masked value is printed and the raw value
is copied to the clipboard, which is cleared again after 30 seconds unless you
have copied something else in the meantime.

--show and --plain are blocked when stdin or stdout is not a terminal.
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    get_parser.add_argument("name", help="Key name in provider:label format")
    get_parser.add_argument("--show", action="store_true", help="Show raw value in terminal")
    get_parser.add_argument(
        "--plain",
        action="store_true",
        help="Output raw value only (for piping). Blocked in non-interactive environments."
    )
    get_parser.add_argument(
        "--force-plain",
        action="store_true",
        help="Force raw output even in non-interactive environments (use with caution)"
    )
    get_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # list
    list_parser = subparsers.add_parser("list", aliases=["ls"], help="List stored keys")
    list_parser.add_argument("--all", action="store_true", help="Include admin keys")
    list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # rm
    rm_parser = subparsers.add_parser("rm", help="Remove a key from the keychain")
    rm_parser.add_argument("name", help="Key name in provider:label format")
    rm_parser.add_argument("--force", action="store_true", help="Skip confirmation prompt")

    # gen
    gen_parser = subparsers.add_parser(
        "gen",
        help="Generate config from template (resolves keychain keys)",
        description="""
Generate a config file from a template.

  .env style:  OPENAI_API_KEY=...        resolved from openai:* runtime keys
  explicit:    {{secret:openai:prod}}    resolved from exactly that key

The output is written atomically with mode 0600. Admin keys are never used.
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    gen_parser.add_argument("template", help="Template file path (e.g. .env.example, .mcp.json.template)")
    gen_parser.add_argument(
        "-o", "--output",
        help="Output file path (default: template name without .example/.template suffix)"
    )
    gen_parser.add_argument("--force", action="store_true", help="Overwrite output file without confirmation")
    gen_parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail without writing if any placeholder has no matching key"
    )

    # exec
    exec_parser = subparsers.add_parser(
        "exec",
        help="Run a command with keys in its environment",
        description="Run a command with API keys set only in the child's environment."
    )
    exec_parser.add_argument(
        "-k", "--key",
        dest="keys",
        action="append",
        help="Key to inject (repeatable). Default: one runtime key per known provider"
    )
    exec_parser.add_argument("exec_command", metavar="command", nargs=argparse.REMAINDER, help="Command to run, after --")

    return parser


def main(argv=None):
    """Main CLI entrypoint.

    Exit codes:
        0 - Success
        1 - Runtime errors (key not found, keychain locked, write failure, etc.)
        2 - Usage errors and access guard denials
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.INFO)

    if not args.command:
        parser.print_help()
        sys.exit(EXIT_USAGE)

    handlers = {
        "version": cmd_version,
        "set": cmd_set,
        "get": cmd_get,
        "list": cmd_list,
        "ls": cmd_list,
        "rm": cmd_rm,
        "gen": cmd_gen,
        "exec": cmd_exec,
    }
    config_handlers = {
        "set-path": cmd_config_set_path,
        "show": cmd_config_show,
        "clear": cmd_config_clear,
    }

    try:
        if args.command == "config":
            handler = config_handlers.get(args.config_command)
            if handler is None:
                parser.print_help()
                sys.exit(EXIT_USAGE)
            handler(args)
        else:
            handlers[args.command](args)
    except AccessDeniedError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_USAGE)
    except ValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_USAGE)
    except KeyNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        _report_not_found(e)
        sys.exit(EXIT_FAILURE)
    except LkrError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_FAILURE)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(EXIT_FAILURE)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_FAILURE)

    sys.exit(EXIT_OK)


if __name__ == "__main__":
    main()
