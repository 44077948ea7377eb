"""Transcript persistence."""

from .models import Base, BusMessageModel
from .service import TranscriptStore

__all__ = ["Base", "BusMessageModel", "TranscriptStore"]
