"""Transcript discovery and resumable, line-oriented reading.

Transcripts are JSONL files, one record per line. Reading starts at a byte
offset and yields parsed messages lazily together with the byte range each
one occupies, so a caller can persist exactly how far it got.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from memorylane.exceptions import ParseError

logger = logging.getLogger(__name__)

Role = Literal["user", "assistant"]

_LEGACY_ROLES: dict[str, Role] = {"input": "user", "output": "assistant"}


class TranscriptMessage(BaseModel):
    """One conversational message.

    Attributes:
        role: "user" or "assistant".
        text: Message text (tool output and non-text blocks removed).
        timestamp: When the message was written, if recorded.
        tool_calls: Names of tools invoked in this message.
    """

    model_config = ConfigDict(extra="forbid")

    role: Role
    text: str
    timestamp: datetime | None = None
    tool_calls: list[str] = Field(default_factory=list)


@dataclass(frozen=True)
class TranscriptRecord:
    """A parsed message plus the byte range of its line."""

    message: TranscriptMessage
    start: int
    end: int


@dataclass(frozen=True)
class TranscriptFile:
    """A discovered transcript file.

    Attributes:
        path: Absolute file path.
        session_id: Session identifier (the file stem).
        project: Project the session belongs to (the parent directory name).
        size: File size in bytes at discovery time.
        modified_at: Last modification time at discovery time.
    """

    path: Path
    session_id: str
    project: str
    size: int
    modified_at: datetime


@dataclass
class TranscriptBatch:
    """Everything readable past a position, materialized for one cycle.

    ``end_position`` covers every complete line consumed, including lines
    that were skipped, so a cursor can move past trailing non-message lines.
    """

    records: list[TranscriptRecord] = field(default_factory=list)
    end_position: int = 0


def _content_text(content: Any) -> tuple[str, list[str]]:
    """Flatten str or block-list content into text plus tool-call names."""
    if isinstance(content, str):
        return content, []
    if not isinstance(content, list):
        raise ValueError(f"unsupported content type: {type(content).__name__}")

    texts: list[str] = []
    tools: list[str] = []
    for block in content:
        if isinstance(block, str):
            texts.append(block)
        elif isinstance(block, dict):
            if block.get("type") == "text" and isinstance(block.get("text"), str):
                texts.append(block["text"])
            elif block.get("type") == "tool_use" and block.get("name"):
                tools.append(str(block["name"]))
    return "\n".join(t for t in texts if t), tools


def parse_record(data: Any) -> TranscriptMessage | None:
    """Turn one decoded JSONL object into a message.

    Accepts three shapes:
        {"type": "input"|"output", "content": ..., "timestamp": ...}
        {"role": "user"|"assistant", "text"|"content": ..., "timestamp": ...}
        {"type": "user"|"assistant", "message": {"role": ..., "content": ...}}

    Returns:
        The message, or None for records that are valid but not
        conversational (summaries, system lines, pure tool results).

    Raises:
        ValueError: If the record looks like a message but is malformed.
    """
    if not isinstance(data, dict):
        raise ValueError("record is not a JSON object")

    timestamp = data.get("timestamp")
    envelope = data.get("message")
    if isinstance(envelope, dict):
        role = envelope.get("role") or data.get("type")
        text, tools = _content_text(envelope.get("content", ""))
    elif data.get("type") in _LEGACY_ROLES:
        role = _LEGACY_ROLES[data["type"]]
        text, tools = _content_text(data.get("content", ""))
        tools = tools or [str(t) for t in data.get("tool_calls") or []]
    elif "role" in data:
        role = data["role"]
        text, tools = _content_text(data.get("text", data.get("content", "")))
        tools = tools or [
            str(t.get("name", t)) if isinstance(t, dict) else str(t)
            for t in data.get("tool_calls") or []
        ]
    else:
        return None

    if role not in ("user", "assistant"):
        return None
    if not text.strip():
        return None

    try:
        return TranscriptMessage(role=role, text=text, timestamp=timestamp, tool_calls=tools)
    except ValidationError as e:
        raise ValueError(str(e)) from e


class TranscriptSource:
    """Discovers transcript files and reads them from a byte offset.

    Example:
        ```python
        source = TranscriptSource(Path("~/.claude/projects").expanduser())
        for transcript in source.discover():
            for record in source.read_from(transcript, position=0):
                print(record.message.role, record.end)
        ```
    """

    def __init__(self, root: Path, pattern: str = "**/*.jsonl") -> None:
        self.root = Path(root).expanduser()
        self.pattern = pattern

    def discover(self) -> list[TranscriptFile]:
        """List transcript files, newest first.

        A missing root directory yields an empty list.
        """
        if not self.root.is_dir():
            logger.info("Transcript directory does not exist: %s", self.root)
            return []

        files: list[TranscriptFile] = []
        for path in self.root.glob(self.pattern):
            if not path.is_file():
                continue
            stat = path.stat()
            files.append(
                TranscriptFile(
                    path=path.resolve(),
                    session_id=path.stem,
                    project=path.parent.name,
                    size=stat.st_size,
                    modified_at=datetime.fromtimestamp(stat.st_mtime, tz=UTC),
                )
            )
        files.sort(key=lambda f: (f.modified_at, str(f.path)), reverse=True)
        return files

    def read_from(
        self,
        file: TranscriptFile | Path | str,
        position: int = 0,
    ) -> Iterator[TranscriptRecord]:
        """Lazily yield messages starting at byte ``position``.

        Only newline-terminated lines are consumed; a trailing partial line
        (a writer mid-append) is left for the next read. Malformed lines are
        logged and skipped. Calling again with the same position yields the
        same records.
        """
        for item in self._iter_lines(file, position):
            if isinstance(item, TranscriptRecord):
                yield item

    def read_batch(self, file: TranscriptFile | Path | str, position: int = 0) -> TranscriptBatch:
        """Read every complete line past ``position`` into a batch."""
        batch = TranscriptBatch(end_position=position)
        for item in self._iter_lines(file, position):
            if isinstance(item, TranscriptRecord):
                batch.records.append(item)
                batch.end_position = item.end
            else:
                batch.end_position = item
        return batch

    def _iter_lines(
        self,
        file: TranscriptFile | Path | str,
        position: int,
    ) -> Iterator[TranscriptRecord | int]:
        """Yield a record per message line, or the end offset of a skipped line."""
        path = file.path if isinstance(file, TranscriptFile) else Path(file)
        with path.open("rb") as handle:
            handle.seek(position)
            offset = position
            while True:
                raw = handle.readline()
                if not raw or not raw.endswith(b"\n"):
                    return
                start, offset = offset, offset + len(raw)
                line = raw.strip()
                if not line:
                    yield offset
                    continue

                try:
                    message = self._parse_line(line, str(path), start)
                except ParseError as e:
                    logger.warning("Skipping malformed transcript line: %s", e)
                    yield offset
                    continue

                if message is None:
                    yield offset
                else:
                    yield TranscriptRecord(message=message, start=start, end=offset)

    @staticmethod
    def _parse_line(line: bytes, path: str, position: int) -> TranscriptMessage | None:
        try:
            data = json.loads(line)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ParseError(path, position, f"invalid JSON: {e}") from e
        try:
            return parse_record(data)
        except ValueError as e:
            raise ParseError(path, position, str(e)) from e
