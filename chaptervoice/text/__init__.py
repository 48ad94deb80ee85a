"""Text segmentation: chapter detection, chunking, and narration estimates."""

from .chapter_detector import ChapterDetector
from .chunking import TextChunker

__all__ = ["ChapterDetector", "TextChunker"]
