"""LLM Key Ring: keep LLM API keys in the OS keychain and hand them out carefully."""

__version__ = "0.1.0"
