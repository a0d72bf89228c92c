"""Input validation for CLI arguments."""
import sys

from llm_key_ring.keys.domains.errors import ValidationError
from llm_key_ring.keys.domains.models import Identifier


def validate_key_name(name: str) -> Identifier:
    """
    Validate a key name matches provider:label.

    Both parts allow only: [a-z0-9][a-z0-9-]*

    Args:
        name: Key name to validate

    Returns:
        Parsed Identifier

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not name:
        print("Error: Key name cannot be empty", file=sys.stderr)
        print("\nKey names must match: provider:label", file=sys.stderr)
        sys.exit(2)

    try:
        return Identifier.parse(name)
    except ValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("\nAllowed characters: lowercase letters, digits, hyphens (-), one colon between provider and label", file=sys.stderr)
        print("\nExamples of valid names:", file=sys.stderr)
        print("  ✓ openai:prod", file=sys.stderr)
        print("  ✓ anthropic:main", file=sys.stderr)
        print("  ✓ azure-openai:team-2", file=sys.stderr)
        print("\nExamples of invalid names:", file=sys.stderr)
        print("  ✗ openai (missing label)", file=sys.stderr)
        print("  ✗ OpenAI:prod (uppercase)", file=sys.stderr)
        print("  ✗ open_ai:prod (underscore)", file=sys.stderr)
        sys.exit(2)


def validate_key_value(value: str) -> None:
    """
    Validate key value is not empty.

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not value or value.strip() == "":
        print("Error: Empty value is not allowed", file=sys.stderr)
        print("\nNothing was stored. Paste the key when prompted.", file=sys.stderr)
        sys.exit(2)
