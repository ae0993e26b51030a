"""Character-based windowing of note text for the RAG pipeline.

Every window starts with a title header so that each embedded vector
carries the note title alongside its slice of the body.
"""
from typing import List
import structlog

from notesrag import config
from notesrag.errors import ConfigurationError

logger = structlog.get_logger()

HEADER_TEMPLATE = "Title: {title}\n\nContent: "


def window_header(title: str) -> str:
    """Build the header prepended to every window of a note."""
    return HEADER_TEMPLATE.format(title=title)


class CharChunker:
    """Word-boundary aware character chunker with overlap support."""

    def __init__(
        self,
        max_chars: int = None,
        overlap: int = None,
    ):
        """Initialize the chunker.

        Args:
            max_chars: Maximum window length, header included (default from config)
            overlap: Characters repeated between consecutive windows (default from config)

        Raises:
            ConfigurationError: If the sizes cannot produce windows
        """
        self.max_chars = config.WINDOW_MAX_CHARS if max_chars is None else max_chars
        self.overlap = config.WINDOW_OVERLAP if overlap is None else overlap

        if self.max_chars <= 0:
            raise ConfigurationError(
                f"Window size must be positive, got {self.max_chars}"
            )

        if self.overlap < 0 or self.overlap >= self.max_chars:
            raise ConfigurationError(
                f"Overlap ({self.overlap}) must be between 0 and "
                f"window size ({self.max_chars})"
            )

        if self.max_chars <= len(window_header("")):
            raise ConfigurationError(
                f"Window size ({self.max_chars}) cannot fit the title header"
            )

    def create_windows(self, text: str, title: str) -> List[str]:
        """Split text into overlapping, header-prefixed windows.

        Args:
            text: Normalized note text
            title: Note title used in the header

        Returns:
            Ordered list of window strings

        Raises:
            ConfigurationError: If the title header leaves no room for content
        """
        header = window_header(title)
        room = self.max_chars - len(header)

        if room <= 0:
            raise ConfigurationError(
                "Max window size is too small to accommodate the title header "
                f"(title length {len(title)}, window size {self.max_chars})"
            )

        windows = []
        text_length = len(text)
        position = 0

        while position < text_length:
            end = position + room

            if end >= text_length:
                windows.append(header + text[position:])
                break

            # Last space at or before the candidate end
            split_at = text.rfind(" ", position, end + 1)

            # A single word fills the window: break after it instead
            if split_at <= position:
                split_at = text.find(" ", end)
                if split_at == -1:
                    windows.append(header + text[position:])
                    break

            windows.append(header + text[position:split_at])

            next_position = max(split_at + 1 - self.overlap, 0)

            # Prevent an infinite loop when the overlap spans the whole window
            if next_position <= position:
                next_position = split_at + 1

            position = next_position

        logger.debug(
            "text_windowed",
            title=title,
            text_length=text_length,
            window_count=len(windows),
        )

        return windows


def create_windows(
    text: str, title: str, max_chars: int = None, overlap: int = None
) -> List[str]:
    """Window text with a one-off chunker (convenience function)."""
    return CharChunker(max_chars=max_chars, overlap=overlap).create_windows(text, title)
