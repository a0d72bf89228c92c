"""Template parsing and resolution.

Two placeholder grammars:

* `.env` style: each `NAME=value` line is a placeholder keyed by NAME, matched
  exactly against the provider table (OPENAI_API_KEY -> openai:*).
* explicit: `{{secret:provider:label}}` tokens anywhere in the text, used for
  JSON and other structured files.

A text containing `{{secret:` is parsed with the explicit grammar, anything
else as `.env`.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from .context import ExecutionContext, classify
from .errors import AccessDeniedError, KeyNotFoundError, TemplateParseError, ValidationError
from .guard import Operation, authorize
from .models import Identifier
from .providers import ProviderTable, group_runtime_candidates
from .store import KeyStore

logger = logging.getLogger(__name__)

TOKEN_OPEN = "{{secret:"
TOKEN_CLOSE = "}}"

_ENV_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class EnvPlaceholder:
    """A `NAME=value` line. `raw` is the line as written, without its line ending."""
    name: str
    lead: str
    raw: str

    @property
    def placeholder(self) -> str:
        return self.name


@dataclass(frozen=True)
class ExplicitPlaceholder:
    token: str
    identifier: Identifier

    @property
    def placeholder(self) -> str:
        return self.token


Placeholder = Union[EnvPlaceholder, ExplicitPlaceholder]
Span = Union[Literal, EnvPlaceholder, ExplicitPlaceholder]


@dataclass
class Template:
    spans: List[Span]
    grammar: str

    @property
    def placeholders(self) -> List[Placeholder]:
        return [s for s in self.spans if not isinstance(s, Literal)]


def is_explicit_template(text: str) -> bool:
    return TOKEN_OPEN in text


def _parse_env_line(line: str) -> Span:
    stripped = line.strip()
    if not stripped or stripped.startswith("#") or "=" not in stripped:
        return Literal(line)

    name = stripped[:stripped.index("=")].strip()
    lead = line[:len(line) - len(line.lstrip())]
    if name.startswith("export "):
        name = name[len("export "):].strip()
        lead += "export "
    if not _ENV_NAME.match(name):
        return Literal(line)
    return EnvPlaceholder(name=name, lead=lead, raw=line)


def _parse_env(text: str) -> Template:
    spans: List[Span] = []
    for line in text.splitlines(keepends=True):
        body = line.rstrip("\r\n")
        ending = line[len(body):]
        spans.append(_parse_env_line(body))
        if ending:
            spans.append(Literal(ending))
    return Template(spans, "env")


def _parse_explicit(text: str) -> Template:
    spans: List[Span] = []
    pos = 0
    while True:
        start = text.find(TOKEN_OPEN, pos)
        if start < 0:
            break
        end = text.find(TOKEN_CLOSE, start)
        line_no = text.count("\n", 0, start) + 1
        if end < 0:
            raise TemplateParseError(f"Unclosed placeholder starting at line {line_no}")
        token = text[start:end + len(TOKEN_CLOSE)]
        try:
            ident = Identifier.parse(text[start + len(TOKEN_OPEN):end])
        except ValidationError as e:
            raise TemplateParseError(f"Invalid placeholder {token} at line {line_no}: {e}") from None
        if start > pos:
            spans.append(Literal(text[pos:start]))
        spans.append(ExplicitPlaceholder(token=token, identifier=ident))
        pos = end + len(TOKEN_CLOSE)
    if pos < len(text):
        spans.append(Literal(text[pos:]))
    return Template(spans, "explicit")


def parse_template(text: str) -> Template:
    """
    Parse template text into literal and placeholder spans.

    Raises:
        TemplateParseError: If an explicit token is unclosed or malformed
    """
    if is_explicit_template(text):
        return _parse_explicit(text)
    return _parse_env(text)


@dataclass(frozen=True)
class ResolvedEntry:
    placeholder: str
    identifier: Identifier
    alternatives: Tuple[Identifier, ...] = ()


@dataclass
class ResolutionReport:
    resolved: List[ResolvedEntry] = field(default_factory=list)
    unresolved: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return bool(self.unresolved)

    def pairs(self) -> List[Tuple[str, Identifier]]:
        return [(r.placeholder, r.identifier) for r in self.resolved]


class RenderedTemplate:
    """Resolved output held in a wipeable buffer, plus its report."""

    def __init__(self, content: bytearray, report: ResolutionReport):
        self.content = content
        self.report = report

    def __enter__(self) -> "RenderedTemplate":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wipe()

    def wipe(self) -> None:
        for i in range(len(self.content)):
            self.content[i] = 0

    def __repr__(self) -> str:
        return (f"RenderedTemplate(resolved={len(self.report.resolved)}, "
                f"unresolved={len(self.report.unresolved)}, content=<redacted>)")


def _choose(provider: str, candidates: List[Identifier], placeholder: str, report: ResolutionReport) -> Identifier:
    chosen = candidates[0]
    if len(candidates) > 1:
        others = ", ".join(str(c) for c in candidates[1:])
        report.warnings.append(f"{placeholder}: using {chosen}; also available: {others}")
    return chosen


def resolve(
    template: Template,
    store: KeyStore,
    context: Optional[ExecutionContext] = None,
    providers: Optional[ProviderTable] = None,
) -> RenderedTemplate:
    """
    Resolve every placeholder of a parsed template against the store.

    Only runtime keys are used. Placeholders with no stored key are kept
    verbatim and listed as unresolved. Any error aborts the whole pass and
    the partial buffer is wiped.

    Raises:
        AccessDeniedError: If an explicit placeholder names an admin key
        StoreError: If the store fails
    """
    context = context or classify()
    providers = providers or ProviderTable.default()
    report = ResolutionReport()
    out = bytearray()

    candidates = {}
    if template.grammar == "env" and template.placeholders:
        candidates = group_runtime_candidates(store.enumerate())

    try:
        for span in template.spans:
            if isinstance(span, Literal):
                out += span.text.encode("utf-8")
            elif isinstance(span, EnvPlaceholder):
                if not _emit_env(span, store, context, providers, candidates, report, out):
                    out += span.raw.encode("utf-8")
                    report.unresolved.append(span.name)
            else:
                if not _emit_explicit(span, store, context, report, out):
                    out += span.token.encode("utf-8")
                    report.unresolved.append(span.token)
    except BaseException:
        RenderedTemplate(out, report).wipe()
        raise

    for warning in report.warnings:
        logger.warning(f"Warning: {warning}")
    logger.info(f"Resolved {len(report.resolved)} placeholder(s), {len(report.unresolved)} unresolved")
    return RenderedTemplate(out, report)


def _emit_env(span, store, context, providers, candidates, report, out) -> bool:
    provider = providers.provider_for(span.name)
    if provider is None or not candidates.get(provider):
        return False

    ident = _choose(provider, candidates[provider], span.name, report)
    try:
        envelope = store.fetch(ident)
    except KeyNotFoundError:
        # removed between enumerate and fetch
        return False

    with envelope:
        # kind may have changed since enumerate; admin keys never resolve implicitly
        if not authorize(Operation.TEMPLATE, envelope.kind, context).allowed:
            return False
        out += f"{span.lead}{span.name}=".encode("utf-8")
        out += envelope.expose_bytes()

    report.resolved.append(ResolvedEntry(span.name, ident, tuple(candidates[provider][1:])))
    return True


def _emit_explicit(span, store, context, report, out) -> bool:
    try:
        envelope = store.fetch(span.identifier)
    except KeyNotFoundError:
        return False

    with envelope:
        if not authorize(Operation.TEMPLATE, envelope.kind, context).allowed:
            raise AccessDeniedError(
                f"Admin key '{span.identifier}' cannot be used in templates. Only runtime keys are allowed."
            )
        out += envelope.expose_bytes()

    report.resolved.append(ResolvedEntry(span.token, span.identifier))
    return True
