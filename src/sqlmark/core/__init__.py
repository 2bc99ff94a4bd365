"""Core value types shared by the editor buffer and the exchange format."""

from .ranges import EditorRange, TextRange

__all__ = ["EditorRange", "TextRange"]
