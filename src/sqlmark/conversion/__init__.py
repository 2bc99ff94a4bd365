"""Markup conversion between rendered and canonical query text."""

from .converter import CanonicalResult, MarkupConverter, MaterializeResult, place_reference
from .scratch import ScratchHost

__all__ = ["CanonicalResult", "MarkupConverter", "MaterializeResult", "ScratchHost", "place_reference"]
