# ============================================================================
# ADAPTIVE CHUNKER
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Worker - Memory-aware content splitting
# PURPOSE: Split large inputs into overlapping, line-aligned chunks
# CREATED: 16 OCT 2026
# EXPORTS: AdaptiveChunker, Chunk, reassemble
# DEPENDENCIES: worker.resources (optional)
# ============================================================================
"""
Adaptive Chunker

Splits content into chunks whose size follows memory pressure:

    memory% > target          size = max(min_size, size * factor)
    memory% < target / 2      size = min(max_size, size / factor)
    otherwise                 unchanged

Boundary rules:
- A chunk ends at the first line end at or after chunk_start + size,
  or at end of input
- The next chunk repeats the tail of the previous one: at most
  min(overlap, previous length) characters, starting at a line start
- Every chunk contributes at least one new character

reassemble() drops the declared overlaps, so
    reassemble(chunker.chunk(text)) == text
"""

import logging
import threading
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, TextIO, Union

from core.config import ChunkingDefaults, get_defaults

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Chunk:
    """One piece of content with its position in the source."""
    index: int
    content: str
    start: int
    end: int
    overlap: int = 0

    @property
    def new_content(self) -> str:
        """Content after the overlap carried from the previous chunk."""
        return self.content[self.overlap:]

    def __len__(self) -> int:
        return len(self.content)


def reassemble(chunks: Iterable[Chunk]) -> str:
    """Inverse of chunking: concatenate chunks without their overlaps."""
    return "".join(chunk.new_content for chunk in chunks)


class AdaptiveChunker:
    """Chunk sizing driven by the resource monitor's memory reading."""

    def __init__(
        self,
        monitor=None,
        initial_size: int = 4096,
        min_size: int = 512,
        max_size: int = 64 * 1024,
        overlap: int = 128,
        adjustment_factor: float = 0.5,
        target_memory_percent: float = 80.0,
        read_buffer_size: int = 8192,
    ):
        """
        Initialize chunker.

        Args:
            monitor: ResourceMonitor (None = fixed size)
            initial_size: Starting chunk size in characters
            min_size: Lower bound for shrinking
            max_size: Upper bound for growing
            overlap: Characters repeated at the start of each following chunk
            adjustment_factor: Multiplier in (0, 1) applied when shrinking
            target_memory_percent: Memory percent above which chunks shrink
            read_buffer_size: Read size for streaming sources
        """
        if not 0 < min_size <= max_size:
            raise ValueError(f"Invalid chunk bounds: min={min_size} max={max_size}")
        if not 0.0 < adjustment_factor < 1.0:
            raise ValueError(f"adjustment_factor must be in (0, 1), got {adjustment_factor}")
        if overlap < 0:
            raise ValueError(f"overlap must be >= 0, got {overlap}")

        self.monitor = monitor
        self.min_size = min_size
        self.max_size = max_size
        self.overlap = overlap
        self.adjustment_factor = adjustment_factor
        self.target_memory_percent = target_memory_percent
        self.read_buffer_size = read_buffer_size
        self._size = max(min_size, min(max_size, initial_size))
        self._lock = threading.Lock()

    @classmethod
    def from_defaults(cls, monitor=None, defaults: Optional[ChunkingDefaults] = None) -> "AdaptiveChunker":
        defaults = defaults or get_defaults().chunking
        return cls(
            monitor,
            initial_size=defaults.initial_size,
            min_size=defaults.min_size,
            max_size=defaults.max_size,
            overlap=defaults.overlap,
            adjustment_factor=defaults.adjustment_factor,
            target_memory_percent=defaults.target_memory_percent,
            read_buffer_size=defaults.read_buffer_size,
        )

    @property
    def chunk_size(self) -> int:
        """Last computed size."""
        return self._size

    def calculate_chunk_size(self) -> int:
        """Adjust and return the chunk size for current memory pressure."""
        with self._lock:
            if self.monitor is None:
                return self._size

            self.monitor.update()
            memory = self.monitor.memory_percent()
            previous = self._size

            if memory > self.target_memory_percent:
                self._size = max(self.min_size, int(self._size * self.adjustment_factor))
            elif memory < self.target_memory_percent / 2:
                self._size = min(self.max_size, int(self._size / self.adjustment_factor))

            if self._size != previous:
                logger.debug(
                    f"Chunk size {previous} -> {self._size} (memory={memory:.1f}%)"
                )
            return self._size

    def _boundary(self, text: str, start: int, floor: int, size: int) -> int:
        """First line end at or after start + size and beyond floor, else -1."""
        search_from = max(start + size, floor + 1) - 1
        newline = text.find("\n", search_from)
        return newline + 1 if newline != -1 else -1

    def _carry(self, text: str, start: int, end: int) -> int:
        """
        Length of the tail of text[start:end] repeated in the next chunk.

        At most min(overlap, end - start) characters, starting at a line
        start; 0 when the last line is longer than the overlap.
        """
        overlap = min(self.overlap, end - start)
        tail_start = end - overlap
        if overlap == 0 or tail_start == start or text[tail_start - 1] == "\n":
            return overlap
        newline = text.find("\n", tail_start, end)
        return 0 if newline == -1 else end - (newline + 1)

    def chunk(self, content: str, size: Optional[int] = None) -> List[Chunk]:
        """
        Split content into chunks.

        Args:
            content: Text to split
            size: Explicit size (default: calculate_chunk_size())

        Returns:
            List of Chunk, at least one
        """
        size = size or self.calculate_chunk_size()
        if len(content) <= size:
            return [Chunk(index=0, content=content, start=0, end=len(content))]

        chunks: List[Chunk] = []
        start = 0
        previous_end = 0
        overlap = 0

        while previous_end < len(content):
            end = self._boundary(content, start, previous_end, size)
            if end == -1:
                end = len(content)

            chunks.append(Chunk(
                index=len(chunks),
                content=content[start:end],
                start=start,
                end=end,
                overlap=overlap,
            ))

            overlap = self._carry(content, start, end)
            previous_end = end
            start = end - overlap

        return chunks

    def chunk_stream(
        self,
        source: Union[TextIO, Iterable[str]],
        read_size: Optional[int] = None,
    ) -> Iterator[Chunk]:
        """
        Chunk a text stream without holding it whole.

        Args:
            source: Object with read(n) or an iterable of strings
            read_size: Characters per read (default read_buffer_size)

        Yields:
            Chunk, recomputing the size after each one
        """
        read_size = read_size or self.read_buffer_size
        if hasattr(source, "read"):
            pieces: Iterable[str] = iter(lambda: source.read(read_size), "")
        else:
            pieces = source

        buffer = ""
        buffer_start = 0
        overlap = 0
        index = 0
        size = self.calculate_chunk_size()

        for piece in pieces:
            buffer += piece
            while True:
                end = self._boundary(buffer, 0, overlap, size)
                if end == -1:
                    break

                yield Chunk(
                    index=index,
                    content=buffer[:end],
                    start=buffer_start,
                    end=buffer_start + end,
                    overlap=overlap,
                )
                index += 1

                overlap = self._carry(buffer, 0, end)
                buffer_start += end - overlap
                buffer = buffer[end - overlap:]
                size = self.calculate_chunk_size()

        if index == 0 or len(buffer) > overlap:
            yield Chunk(
                index=index,
                content=buffer,
                start=buffer_start,
                end=buffer_start + len(buffer),
                overlap=overlap if index else 0,
            )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["AdaptiveChunker", "Chunk", "reassemble"]
