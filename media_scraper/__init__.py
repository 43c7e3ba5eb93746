"""Bulk page scanning for image and video references."""

from .extraction import extract_media
from .worker import WorkerPool

__all__ = ["WorkerPool", "extract_media"]
