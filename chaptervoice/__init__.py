"""Top-level package for chaptervoice.

This package converts book manuscripts into chapter-by-chapter audio through a
rate-limited speech provider. The main wiring entry point is
`ChaptervoicePipeline`; jobs are driven by `JobCoordinator`.
"""

from .pipeline import ChaptervoicePipeline

__all__ = ["ChaptervoicePipeline", "__version__"]

__version__ = "0.1.0"
