"""Prompt context assembly."""

from convrag.context.builder import ContextAssembler, truncate_context

__all__ = ["ContextAssembler", "truncate_context"]
