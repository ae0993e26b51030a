#!/usr/bin/env python
"""Rebuild the notes index from the Notes application.

Usage:
    python scripts/reindex.py              # Clear and re-ingest every note
    python scripts/reindex.py --yes        # Skip the 3 second safety delay
    python scripts/reindex.py --verbose    # Debug logging instead of a progress bar
"""
import argparse
import asyncio
import sys
from pathlib import Path
from datetime import datetime

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from notesrag import config
from notesrag.errors import NotesRagError, SourceStreamError
from notesrag.logging_setup import configure_logging
from notesrag.rag.ingest import IngestPipeline
import structlog

logger = structlog.get_logger()


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.start_time = None

    def start(self, message: str):
        """Start progress reporting."""
        self.start_time = datetime.now()
        print(f"\n{'=' * 60}")
        print(f"  {message}")
        print(f"{'=' * 60}\n")

    def update(self, current: int, total, title: str):
        """Update progress."""
        if total:
            percentage = min(current / total, 1.0) * 100
            filled = int(40 * min(current / total, 1.0))
        else:
            percentage = 0.0
            filled = 0
        bar = "█" * filled + "░" * (40 - filled)

        print(
            f"\r  [{bar}] {percentage:5.1f}% ({current}/{total or '?'}) {title[:30]:<30}",
            end="",
            flush=True,
        )

    def finish(self, stats: dict):
        """Finish progress reporting."""
        print("\n")
        elapsed_seconds = (datetime.now() - self.start_time).total_seconds()

        print(f"{'=' * 60}")
        print("  Indexing Complete!")
        print(f"{'=' * 60}\n")
        print(f"  Notes in source:    {stats['notes_total']}")
        print(f"  Notes processed:    {stats['notes_seen']}")
        print(f"  Notes saved:        {stats['notes_saved']}")
        print(f"  Notes failed:       {stats['notes_failed']}")
        print(f"  Notes discarded:    {stats['notes_discarded']}")
        print(f"  Windows saved:      {stats['windows_saved']}")
        print(f"  Windows failed:     {stats['windows_failed']}")
        print(f"  Time elapsed:       {elapsed_seconds:.1f}s")

        if stats["windows_saved"] > 0 and elapsed_seconds > 0:
            rate = stats["windows_saved"] / elapsed_seconds
            print(f"  Indexing rate:      {rate:.1f} windows/sec")

        print(f"\n{'=' * 60}\n")

        if stats["notes_failed"] or stats["windows_failed"]:
            print("Warning: some notes or windows failed to index. Check logs for details.\n")

        print(f"Database at: {config.DB_PATH}\n")


async def main():
    """Main entry point for reindex script."""
    parser = argparse.ArgumentParser(
        description="Clear and rebuild the notes index",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--yes",
        "-y",
        action="store_true",
        help="Do not wait before clearing the existing index",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show debug logs instead of a progress bar",
    )
    args = parser.parse_args()

    configure_logging(log_level="DEBUG" if args.verbose else "WARNING")
    progress = ProgressReporter(verbose=args.verbose)

    try:
        print("\nConfiguration:")
        print(f"   Database:         {config.DB_PATH}")
        print(f"   Embedding model:  {config.EMBEDDING_MODEL}")
        print(f"   Window size:      {config.WINDOW_MAX_CHARS} chars")
        print(f"   Window overlap:   {config.WINDOW_OVERLAP} chars")

        pipeline = IngestPipeline()

        if not args.yes:
            print("\nThe existing index will be cleared!")
            print("   Press Ctrl+C within 3 seconds to cancel...")
            await asyncio.sleep(3)

        progress.start("Rebuilding Notes Index")

        stats = await pipeline.ingest_all(
            progress_callback=None if args.verbose else progress.update,
        )
        progress.finish(stats)

    except KeyboardInterrupt:
        print("\n\nIndexing cancelled by user.\n")
        sys.exit(1)

    except SourceStreamError as e:
        print(f"\nError: {e}\n")
        if e.stats:
            progress.finish(e.stats)
        sys.exit(1)

    except NotesRagError as e:
        print(f"\nError: {e}\n")
        logger.error("reindex_script_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
