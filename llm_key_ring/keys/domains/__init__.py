"""Leaf components: store adapters, envelope, guard, clipboard, writer."""
