"""Record source: the Notes application, driven through osascript.

The extraction script logs every note as a delimited block (see
stream_parser). AppleScript ``log`` writes to stderr, so that is the stream
the pipeline reads.
"""
import asyncio
import secrets
from typing import List
import structlog

from notesrag import config
from notesrag.errors import SourceStreamError

logger = structlog.get_logger()

COUNT_SCRIPT = """
tell application "Notes"
    set noteCount to count of notes
end tell
""".strip()

EXTRACT_SCRIPT = """
tell application "Notes"
   repeat with eachNote in every note
      set noteId to the id of eachNote
      set noteTitle to the name of eachNote
      set noteBody to the body of eachNote
      set noteCreatedDate to the creation date of eachNote
      set noteCreated to (noteCreatedDate as «class isot» as string)
      set noteUpdatedDate to the modification date of eachNote
      set noteUpdated to (noteUpdatedDate as «class isot» as string)
      set noteContainer to container of eachNote
      set noteFolderId to the id of noteContainer
      set noteFolderName to the name of noteContainer

      log "{split}START{split}"

      log "{split}-id: " & noteId
      log "{split}-created: " & noteCreated
      log "{split}-updated: " & noteUpdated
      log "{split}-folderId: " & noteFolderId
      log "{split}-folderName: " & noteFolderName
      log "{split}-title: " & noteTitle

      log "{split}BODY_START{split}"
      log noteBody
      log "{split}BODY_END{split}"

      log "{split}END{split}"
   end repeat
end tell
""".strip()


def new_delimiter() -> str:
    """Generate a random delimiter token for one extraction run."""
    return secrets.token_hex(8)


class NotesSource:
    """Spawns the osascript processes that count and export notes."""

    # Which pipe of the extraction process carries the note stream
    stream = "stderr"

    def __init__(self, osascript: str = None):
        self.osascript = osascript or config.OSASCRIPT_PATH

    def count_command(self) -> List[str]:
        return [self.osascript, "-e", COUNT_SCRIPT]

    def extract_command(self, delimiter: str) -> List[str]:
        return [self.osascript, "-e", EXTRACT_SCRIPT.replace("{split}", delimiter)]

    async def count_notes(self) -> int:
        """Ask the source how many notes it holds.

        Raises:
            SourceStreamError: If the process cannot run or prints no number
        """
        try:
            process = await asyncio.create_subprocess_exec(
                *self.count_command(),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error("source_count_spawn_failed", error=str(e))
            raise SourceStreamError(f"Cannot start record source: {e}") from e

        stdout, stderr = await process.communicate()

        if process.returncode != 0:
            logger.error(
                "source_count_failed",
                exit_code=process.returncode,
                stderr=stderr.decode("utf-8", errors="replace")[:500],
            )
            raise SourceStreamError(
                f"Note count failed with code {process.returncode}",
                exit_code=process.returncode,
            )

        output = stdout.decode("utf-8", errors="replace").strip()
        try:
            count = int(output)
        except ValueError as e:
            raise SourceStreamError(f"Unexpected note count output: {output!r}") from e

        logger.info("source_notes_counted", count=count)
        return count

    async def spawn(self, delimiter: str) -> asyncio.subprocess.Process:
        """Start the extraction process with the note stream piped.

        Raises:
            SourceStreamError: If the process cannot be started
        """
        pipe = asyncio.subprocess.PIPE
        devnull = asyncio.subprocess.DEVNULL

        try:
            process = await asyncio.create_subprocess_exec(
                *self.extract_command(delimiter),
                stdout=pipe if self.stream == "stdout" else devnull,
                stderr=pipe if self.stream == "stderr" else devnull,
            )
        except OSError as e:
            logger.error("source_spawn_failed", error=str(e))
            raise SourceStreamError(f"Cannot start record source: {e}") from e

        logger.info("source_process_started", pid=process.pid, stream=self.stream)
        return process
