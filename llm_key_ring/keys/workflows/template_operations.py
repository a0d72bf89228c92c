"""Workflow for generating config files from templates."""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from ..domains.atomic_writer import check_ignored, write_atomic
from ..domains.context import ExecutionContext
from ..domains.errors import OutputExistsError, TemplateError, UnresolvedPlaceholdersError
from ..domains.providers import ProviderTable
from ..domains.store import KeyStore
from ..domains.template import ResolutionReport, parse_template, resolve

logger = logging.getLogger(__name__)

TEMPLATE_SUFFIXES = (".example", ".template")


@dataclass
class GenerateResult:
    output_path: Path
    report: ResolutionReport
    # None outside a git repository
    ignored: Optional[bool]


def derive_output_path(template_path: Union[str, Path]) -> Path:
    """
    Derive an output path by dropping the template suffix.

    .env.example -> .env, .mcp.json.template -> .mcp.json

    Raises:
        TemplateError: If the name has no recognized suffix
    """
    template_path = Path(template_path)
    name = template_path.name
    for suffix in TEMPLATE_SUFFIXES:
        if name.endswith(suffix) and len(name) > len(suffix):
            return template_path.parent / name[:-len(suffix)]
    raise TemplateError("Cannot derive output path. Use -o to specify output file.")


def template_generate(
    store: KeyStore,
    input_path: Union[str, Path],
    output_path: Optional[Union[str, Path]] = None,
    force: bool = False,
    strict: bool = False,
    context: Optional[ExecutionContext] = None,
    providers: Optional[ProviderTable] = None,
) -> GenerateResult:
    """
    Resolve a template and write the result atomically with mode 0600.

    Args:
        store: Key store
        input_path: Template file (.env.example, *.template, ...)
        output_path: Output file (default: derived from input_path)
        force: Overwrite an existing output file
        strict: Fail instead of writing when any placeholder is unresolved
        context: Execution context
        providers: Provider table

    Returns:
        GenerateResult

    Raises:
        TemplateError: Template missing or unreadable, or output not derivable
        TemplateParseError: Malformed template
        OutputExistsError: Output exists and force is False
        UnresolvedPlaceholdersError: strict and something is unresolved
        AccessDeniedError: Template references an admin key
        WriteError: Output could not be written
    """
    input_path = Path(input_path)
    if not input_path.is_file():
        raise TemplateError(f"Template file not found: {input_path}")

    target = Path(output_path) if output_path else derive_output_path(input_path)
    if target.exists() and not force:
        raise OutputExistsError(target)

    try:
        text = input_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise TemplateError(f"Cannot read template '{input_path}': {e}") from None

    template = parse_template(text)

    ignored = check_ignored(target)
    if ignored is False:
        logger.warning(f"Warning: '{target}' is NOT in .gitignore. Generated files may contain secrets!")
        logger.warning("  Consider adding it to .gitignore before committing.")

    with resolve(template, store, context=context, providers=providers) as rendered:
        if strict and rendered.report.is_partial:
            raise UnresolvedPlaceholdersError(rendered.report.unresolved)
        write_atomic(target, rendered.content)
        report = rendered.report

    return GenerateResult(output_path=target, report=report, ignored=ignored)
