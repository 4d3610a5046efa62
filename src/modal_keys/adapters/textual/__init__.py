"""Textual front end: key translation, UI hooks, and the demo app."""

from .controller import TextualModalAdapter, TextualUIHooks, textual_key_to_token

__all__ = ["TextualModalAdapter", "TextualUIHooks", "textual_key_to_token"]
