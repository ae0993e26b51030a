#!/usr/bin/env python
"""Run a similarity query against the notes index.

Usage:
    python scripts/query.py "paris trip"
    python scripts/query.py "paris trip" -k 10 --max-distance 15 --folder Travel
"""
import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from notesrag import config
from notesrag.errors import NotesRagError
from notesrag.logging_setup import configure_logging
from notesrag.rag.retriever import query_notes


async def main():
    parser = argparse.ArgumentParser(description="Query the notes index")
    parser.add_argument("query", help="Query text")
    parser.add_argument("-k", type=int, default=config.RETRIEVAL_TOP_K, help="Number of results")
    parser.add_argument(
        "--max-distance",
        type=float,
        default=config.RETRIEVAL_MAX_DISTANCE,
        help="Only return windows closer than this",
    )
    parser.add_argument("--folder", default=None, help="Restrict results to one folder")
    args = parser.parse_args()

    configure_logging(log_level="WARNING")

    try:
        results = await query_notes(
            args.query, k=args.k, max_distance=args.max_distance, folder_name=args.folder
        )
    except NotesRagError as e:
        print(f"\nError: {e}\n")
        sys.exit(1)

    if not results:
        print("No matching notes.")
        return

    for rank, result in enumerate(results, 1):
        print(f"{rank}. {result.note_title}  (distance {result.distance:.3f}, updated {result.note_updated})")
        print(f"   {result.content[:200]}")
        print()


if __name__ == "__main__":
    asyncio.run(main())
