"""Domain models for key management."""
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .errors import ValidationError

# Keychain service name. Never change this default once keys are stored.
SERVICE_NAME = "com.llm-key-ring"


def config_dir() -> Path:
    """~/.config/llm-key-ring, resolved against the current home on every call."""
    return Path.home() / ".config" / "llm-key-ring"


_PART_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]*$")


class KeyKind(str, Enum):
    """Separates high-privilege admin keys from runtime API keys."""
    RUNTIME = "runtime"
    ADMIN = "admin"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, text: str) -> "KeyKind":
        try:
            return cls(text)
        except ValueError:
            raise ValidationError(f"Invalid kind '{text}'. Must be 'runtime' or 'admin'.")


@dataclass(frozen=True, order=True)
class Identifier:
    """A `provider:label` key name."""
    provider: str
    label: str

    def __str__(self) -> str:
        return f"{self.provider}:{self.label}"

    @classmethod
    def parse(cls, name: str) -> "Identifier":
        """
        Parse and validate a key name.

        Both parts must match [a-z0-9][a-z0-9-]*.

        Args:
            name: Key name such as "openai:prod"

        Returns:
            Identifier

        Raises:
            ValidationError: If the name is malformed
        """
        if isinstance(name, Identifier):
            return name

        provider, sep, label = name.partition(":")
        if not sep:
            raise ValidationError(
                f"Invalid key name: {name}. Must be in 'provider:label' format (e.g. openai:prod)"
            )
        if not _PART_PATTERN.match(provider):
            raise ValidationError(
                f"Invalid key name: {name}. Provider '{provider}' must match [a-z0-9][a-z0-9-]*"
            )
        if not _PART_PATTERN.match(label):
            raise ValidationError(
                f"Invalid key name: {name}. Label '{label}' must match [a-z0-9][a-z0-9-]*"
            )
        return cls(provider, label)


def mask_value(value: str) -> str:
    """
    Mask a key for display: "sk-proj-abcdefghijklmnop" -> "sk-p...mnop".

    Values of 8 characters or fewer are fully starred.
    """
    length = len(value)
    if length <= 8:
        return "*" * length
    return f"{value[:4]}...{value[-4:]}"


@dataclass
class KeyEntry:
    """One row of a key listing. Never carries the raw value."""
    name: str
    provider: str
    label: str
    kind: KeyKind
    masked_value: str

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "provider": self.provider,
            "label": self.label,
            "kind": str(self.kind),
            "masked_value": self.masked_value,
        }
