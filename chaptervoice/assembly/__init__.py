"""Chapter-level audio assembly."""

from .assembler import ChapterAssembler, EmptyChapterError

__all__ = ["ChapterAssembler", "EmptyChapterError"]
