"""Chapter audio assembly.

Responsibilities:
- Chunk one chapter and synthesize every chunk through the shared client.
- Reassemble chunk audio strictly by chunk sequence, even under fan-out.
- Fail the whole chapter on the first chunk failure.
- Observe cooperative cancellation before each chunk starts.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, as_completed
import threading

from ..audio.merger import concatenate_audio
from ..errors import ChapterFailedError, JobCancelledError, SynthesisError
from ..models.datatypes import AudioArtifact, Chapter, TextChunk
from ..synthesis.client import SynthesisClient
from ..text.chunking import TextChunker


class EmptyChapterError(ValueError):
    """Raised when a chapter produces no synthesizable chunks."""


class ChapterAssembler:
    """Turn one chapter into one assembled `AudioArtifact`."""

    def __init__(
        self,
        chunker: TextChunker,
        client: SynthesisClient,
        *,
        max_chunk_size: int = 4000,
        chunk_workers: int = 1,
    ) -> None:
        """Initialize assembler collaborators and chunk fan-out width."""

        if max_chunk_size <= 0:
            raise ValueError("`max_chunk_size` must be a positive integer.")
        if chunk_workers <= 0:
            raise ValueError("`chunk_workers` must be a positive integer.")
        self.chunker = chunker
        self.client = client
        self.max_chunk_size = max_chunk_size
        self.chunk_workers = chunk_workers

    def assemble(
        self,
        chapter: Chapter,
        voice_id: str,
        cancel_event: threading.Event | None = None,
    ) -> AudioArtifact:
        """Synthesize and concatenate all chunks of `chapter` in sequence order.

        Raises:
            ChapterFailedError: If the chapter is empty or any chunk fails.
            JobCancelledError: If `cancel_event` is set before a chunk starts.
        """

        chunks = self.chunker.to_chunks(chapter, self.max_chunk_size)
        if not chunks:
            raise ChapterFailedError(
                chapter_index=chapter.index,
                title=chapter.title,
                cause=EmptyChapterError("chapter has no synthesizable text."),
            )

        if self.chunk_workers == 1 or len(chunks) == 1:
            artifacts = self._synthesize_sequential(chapter, chunks, voice_id, cancel_event)
        else:
            artifacts = self._synthesize_parallel(chapter, chunks, voice_id, cancel_event)
        try:
            return self._merge(artifacts)
        except ValueError as exc:
            raise ChapterFailedError(
                chapter_index=chapter.index,
                title=chapter.title,
                cause=exc,
            ) from exc

    def _synthesize_sequential(
        self,
        chapter: Chapter,
        chunks: list[TextChunk],
        voice_id: str,
        cancel_event: threading.Event | None,
    ) -> list[AudioArtifact]:
        artifacts: list[AudioArtifact] = []
        for chunk in chunks:
            self._raise_if_cancelled(chapter, cancel_event)
            try:
                artifacts.append(self.client.synthesize(chunk, voice_id))
            except SynthesisError as exc:
                raise ChapterFailedError(
                    chapter_index=chapter.index,
                    title=chapter.title,
                    cause=exc,
                ) from exc
        return artifacts

    def _synthesize_parallel(
        self,
        chapter: Chapter,
        chunks: list[TextChunk],
        voice_id: str,
        cancel_event: threading.Event | None,
    ) -> list[AudioArtifact]:
        """Fan chunks out to a bounded pool and collect results keyed by sequence."""

        stop = threading.Event()
        results: dict[int, AudioArtifact] = {}
        failure: SynthesisError | JobCancelledError | None = None

        def run_chunk(chunk: TextChunk) -> AudioArtifact | None:
            if stop.is_set():
                return None
            self._raise_if_cancelled(chapter, cancel_event)
            return self.client.synthesize(chunk, voice_id)

        with ThreadPoolExecutor(
            max_workers=min(self.chunk_workers, len(chunks)),
            thread_name_prefix=f"chapter-{chapter.index}",
        ) as executor:
            futures: dict[Future[AudioArtifact | None], TextChunk] = {
                executor.submit(run_chunk, chunk): chunk for chunk in chunks
            }
            for future in as_completed(futures):
                if future.cancelled():
                    continue
                try:
                    artifact = future.result()
                except (SynthesisError, JobCancelledError) as exc:
                    stop.set()
                    for pending in futures:
                        pending.cancel()
                    if failure is None:
                        failure = exc
                    continue
                if artifact is not None:
                    results[futures[future].sequence] = artifact

        if isinstance(failure, JobCancelledError):
            raise failure
        if failure is not None:
            raise ChapterFailedError(
                chapter_index=chapter.index,
                title=chapter.title,
                cause=failure,
            ) from failure
        return [results[chunk.sequence] for chunk in chunks]

    @staticmethod
    def _raise_if_cancelled(chapter: Chapter, cancel_event: threading.Event | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise JobCancelledError(f"Cancelled before finishing chapter {chapter.index}.")

    @staticmethod
    def _merge(artifacts: list[AudioArtifact]) -> AudioArtifact:
        """Concatenate ordered chunk artifacts into one chapter artifact."""

        audio_format = artifacts[0].audio_format
        merged = concatenate_audio([artifact.audio_bytes for artifact in artifacts], audio_format)
        return AudioArtifact(
            audio_bytes=merged,
            duration_seconds=sum(artifact.duration_seconds for artifact in artifacts),
            size_bytes=len(merged),
            audio_format=audio_format,
            duration_estimated=any(artifact.duration_estimated for artifact in artifacts),
        )
