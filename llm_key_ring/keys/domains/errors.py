"""Error taxonomy for llm-key-ring.

No error message may contain a secret value. Messages name the identifier,
path or placeholder involved and nothing more.
"""
from typing import Optional


class LkrError(Exception):
    """Base class for all llm-key-ring errors."""
    pass


class KeyNotFoundError(LkrError):
    """Identifier is not present in the store."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Key not found: {name}")


class KeyAlreadyExistsError(LkrError):
    """A set would overwrite an existing key without confirmation."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Key already exists: {name}. Use --force to overwrite.")


class ValidationError(LkrError):
    """Malformed identifier, empty value or otherwise invalid input."""
    pass


class AccessDeniedError(LkrError):
    """The access guard refused the operation."""

    def __init__(self, reason: str, guidance: Optional[str] = None):
        self.reason = reason
        self.guidance = guidance
        message = reason if not guidance else f"{reason}\n  {guidance}"
        super().__init__(message)


class StoreError(LkrError):
    """The underlying credential store failed."""

    transient = False


class StoreLockedError(StoreError):
    """The credential store is locked. Callers may retry once after unlocking."""

    transient = True

    def __init__(self, message: str = "Keychain is locked. Please unlock and try again."):
        super().__init__(message)


class TemplateError(LkrError):
    """Template could not be read, resolved or generated."""
    pass


class TemplateParseError(TemplateError):
    """Template text is malformed. Raised before any secret is touched."""
    pass


class UnresolvedPlaceholdersError(TemplateError):
    """Strict generation found placeholders with no matching key."""

    def __init__(self, placeholders):
        self.placeholders = list(placeholders)
        listing = ", ".join(self.placeholders)
        super().__init__(f"Unresolved placeholders (strict mode): {listing}")


class OutputExistsError(TemplateError):
    """Generation would overwrite an existing output file."""

    def __init__(self, path):
        self.path = path
        super().__init__(f"Output file already exists: {path}. Use --force to overwrite.")


class WriteError(LkrError):
    """Filesystem failure during an atomic write. The target is left untouched."""
    pass


class ClipboardUnavailableError(LkrError):
    """The clipboard cannot be used, or a clear could not be scheduled."""

    def __init__(self, reason: Optional[str] = None):
        super().__init__(reason or (
            "Clipboard is not available.\n"
            "Install a clipboard tool:\n"
            "  Linux: xclip, xsel, or wl-clipboard\n"
            "  macOS: pbcopy ships with the system\n"
            "  Windows: clip.exe ships with the system"
        ))


class ConfigError(LkrError):
    """Configuration error exception."""
    pass
