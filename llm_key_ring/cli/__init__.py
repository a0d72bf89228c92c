"""Command line interface for llm-key-ring."""
