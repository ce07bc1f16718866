"""Spatial restriction helpers for tmspack."""

from .collector import BoundsCollector

__all__ = ["BoundsCollector"]
