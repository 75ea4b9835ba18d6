"""Tool registry, prompts, and the tool-calling fallback engine."""
