"""Provider to environment variable mapping.

Shared by template resolution and process injection so both agree on which
variable a key lands in.
"""
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .models import Identifier, KeyKind

# (env var prefix, provider). The conventional variable is f"{prefix}API_KEY".
ENV_PREFIX_MAP: Tuple[Tuple[str, str], ...] = (
    ("OPENAI_", "openai"),
    ("ANTHROPIC_", "anthropic"),
    ("GOOGLE_", "google"),
    ("MISTRAL_", "mistral"),
    ("COHERE_", "cohere"),
    ("GROQ_", "groq"),
    ("PERPLEXITY_", "perplexity"),
    ("FIREWORKS_", "fireworks"),
    ("TOGETHER_", "together"),
    ("REPLICATE_", "replicate"),
    ("HUGGINGFACE_", "huggingface"),
    ("DEEPSEEK_", "deepseek"),
    ("XAI_", "xai"),
    ("AZURE_OPENAI_", "azure-openai"),
    ("AWS_", "aws"),
    ("VOYAGE_", "voyage"),
    ("ANYSCALE_", "anyscale"),
)


class ProviderTable:
    """Bidirectional provider <-> env var table."""

    def __init__(self, mapping: Mapping[str, str]):
        self._by_provider: Dict[str, str] = dict(mapping)
        self._by_var: Dict[str, str] = {var: prov for prov, var in self._by_provider.items()}

    @classmethod
    def default(cls, extra: Optional[Mapping[str, str]] = None) -> "ProviderTable":
        """
        Built-in table, optionally extended or overridden by `extra`
        (provider -> env var name, typically from config.yml).
        """
        mapping = {provider: f"{prefix}API_KEY" for prefix, provider in ENV_PREFIX_MAP}
        if extra:
            mapping.update(extra)
        return cls(mapping)

    def env_var_for(self, provider: str) -> Optional[str]:
        return self._by_provider.get(provider)

    def provider_for(self, env_var: str) -> Optional[str]:
        """Exact lookup: OPENAI_API_KEY -> openai. No prefix guessing."""
        return self._by_var.get(env_var)

    def providers(self) -> List[str]:
        return sorted(self._by_provider)


def group_runtime_candidates(entries: Iterable[Tuple[Identifier, KeyKind]]) -> Dict[str, List[Identifier]]:
    """
    Group runtime keys by provider, each list sorted by label.

    Admin keys never appear: they are not candidates for implicit selection.
    """
    grouped: Dict[str, List[Identifier]] = {}
    for ident, kind in entries:
        if kind != KeyKind.RUNTIME:
            continue
        grouped.setdefault(ident.provider, []).append(ident)
    for idents in grouped.values():
        idents.sort(key=lambda i: i.label)
    return grouped
