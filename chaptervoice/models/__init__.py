"""Shared record types for chapters, chunks, audio, and jobs."""

from .datatypes import AudioArtifact, Chapter, ProviderAudio, TextChunk
from .job import Job, JobStatus

__all__ = [
    "AudioArtifact",
    "Chapter",
    "Job",
    "JobStatus",
    "ProviderAudio",
    "TextChunk",
]
