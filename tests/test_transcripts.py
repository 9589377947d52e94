"""Tests for transcript discovery, resumable reading, and chunking."""

import json
import os
from pathlib import Path

import pytest

from memorylane.transcripts import (
    TranscriptMessage,
    TranscriptRecord,
    TranscriptSource,
    chunk_records,
    format_chunk,
    group_turns,
    parse_record,
)

from conftest import write_transcript


def make_records(roles: str) -> list[TranscriptRecord]:
    """Records from a role string such as "uuau" (u=user, a=assistant)."""
    records = []
    offset = 0
    for i, code in enumerate(roles):
        role = "user" if code == "u" else "assistant"
        message = TranscriptMessage(role=role, text=f"message {i}")
        records.append(TranscriptRecord(message=message, start=offset, end=offset + 10))
        offset += 10
    return records


class TestParseRecord:
    """Tests for the three accepted record shapes."""

    def test_legacy_input_output(self):
        """{"type": "input"|"output"} records map to user/assistant."""
        message = parse_record(
            {"type": "input", "content": "hello", "timestamp": "2026-01-01T00:00:00Z"}
        )
        assert message is not None
        assert message.role == "user"
        assert message.text == "hello"
        assert message.timestamp is not None

        reply = parse_record({"type": "output", "content": "hi", "tool_calls": ["Bash"]})
        assert reply is not None
        assert reply.role == "assistant"
        assert reply.tool_calls == ["Bash"]

    def test_role_text(self):
        message = parse_record({"role": "assistant", "text": "done"})
        assert message is not None
        assert message.role == "assistant"

    def test_envelope_with_blocks(self):
        """Text blocks are joined; tool_use blocks become tool calls."""
        message = parse_record(
            {
                "type": "assistant",
                "message": {
                    "role": "assistant",
                    "content": [
                        {"type": "text", "text": "Running tests"},
                        {"type": "tool_use", "name": "Bash", "input": {}},
                        {"type": "text", "text": "All green"},
                    ],
                },
            }
        )
        assert message is not None
        assert message.text == "Running tests\nAll green"
        assert message.tool_calls == ["Bash"]

    @pytest.mark.parametrize(
        "data",
        [
            {"type": "summary", "summary": "Session about databases"},
            {"role": "system", "text": "You are helpful"},
            {"role": "user", "text": "   "},
            {
                "type": "user",
                "message": {"role": "user", "content": [{"type": "tool_result", "content": "ok"}]},
            },
        ],
    )
    def test_non_conversational_records(self, data):
        """Valid but non-conversational records are ignored."""
        assert parse_record(data) is None

    def test_malformed_record(self):
        """A message-shaped record with bad content raises ValueError."""
        with pytest.raises(ValueError):
            parse_record({"role": "user", "content": 42})
        with pytest.raises(ValueError):
            parse_record(["not", "an", "object"])


class TestTranscriptSource:
    """Tests for discovery and reading."""

    def test_discover_missing_dir(self, tmp_path: Path):
        """A missing root yields no files."""
        assert TranscriptSource(tmp_path / "nope").discover() == []

    def test_discover_newest_first(self, tmp_path: Path):
        old = write_transcript(tmp_path / "proj-a" / "s1.jsonl", [("user", "hi")])
        new = write_transcript(tmp_path / "proj-b" / "s2.jsonl", [("user", "hello")])
        os.utime(old, (1_000_000, 1_000_000))
        (tmp_path / "notes.txt").write_text("ignored")

        files = TranscriptSource(tmp_path).discover()

        assert [f.path for f in files] == [new.resolve(), old.resolve()]
        assert files[0].session_id == "s2"
        assert files[0].project == "proj-b"
        assert files[0].size == new.stat().st_size

    def test_read_from_start(self, tmp_path: Path):
        """Records carry contiguous byte ranges."""
        path = write_transcript(tmp_path / "s.jsonl", [("user", "one"), ("assistant", "two")])

        records = list(TranscriptSource(tmp_path).read_from(path))

        assert [r.message.text for r in records] == ["one", "two"]
        assert records[0].start == 0
        assert records[0].end == records[1].start
        assert records[1].end == path.stat().st_size

    def test_read_from_position_resumes(self, tmp_path: Path):
        """Reading from a record's end yields only later records."""
        path = write_transcript(tmp_path / "s.jsonl", [("user", "one"), ("assistant", "two")])
        source = TranscriptSource(tmp_path)
        first = next(iter(source.read_from(path)))

        rest = list(source.read_from(path, first.end))

        assert [r.message.text for r in rest] == ["two"]

    def test_read_is_repeatable(self, tmp_path: Path):
        """Reading twice from the same position yields the same records."""
        path = write_transcript(tmp_path / "s.jsonl", [("user", "one"), ("assistant", "two")])
        source = TranscriptSource(tmp_path)
        assert list(source.read_from(path, 0)) == list(source.read_from(path, 0))

    def test_partial_trailing_line_left_unread(self, tmp_path: Path):
        """A line without its newline is not consumed yet."""
        path = write_transcript(tmp_path / "s.jsonl", [("user", "one")])
        complete = path.stat().st_size
        with path.open("a") as handle:
            handle.write(json.dumps({"role": "assistant", "text": "half"}))

        batch = TranscriptSource(tmp_path).read_batch(path)

        assert [r.message.text for r in batch.records] == ["one"]
        assert batch.end_position == complete

    def test_malformed_lines_skipped(self, tmp_path: Path):
        """Bad JSON is skipped but still counted in the batch end."""
        path = tmp_path / "s.jsonl"
        path.write_text(
            json.dumps({"role": "user", "text": "one"})
            + "\n{not json\n"
            + json.dumps({"role": "user", "content": 42})
            + "\n"
            + json.dumps({"role": "assistant", "text": "two"})
            + "\n"
        )

        batch = TranscriptSource(tmp_path).read_batch(path)

        assert [r.message.text for r in batch.records] == ["one", "two"]
        assert batch.end_position == path.stat().st_size

    def test_trailing_non_message_lines_advance_batch(self, tmp_path: Path):
        """end_position moves past trailing summary lines."""
        path = write_transcript(tmp_path / "s.jsonl", [("user", "one")])
        with path.open("a") as handle:
            handle.write(json.dumps({"type": "summary", "summary": "x"}) + "\n\n")

        batch = TranscriptSource(tmp_path).read_batch(path)

        assert len(batch.records) == 1
        assert batch.records[0].end < batch.end_position == path.stat().st_size

    def test_multibyte_offsets(self, tmp_path: Path):
        """Offsets are bytes, not characters."""
        path = tmp_path / "s.jsonl"
        lines = [
            json.dumps({"role": "user", "text": "café ☕"}, ensure_ascii=False),
            json.dumps({"role": "assistant", "text": "ok"}),
        ]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        source = TranscriptSource(tmp_path)
        first = next(iter(source.read_from(path)))

        assert first.message.text == "café ☕"
        assert first.end == len(lines[0].encode("utf-8")) + 1
        assert [r.message.text for r in source.read_from(path, first.end)] == ["ok"]


class TestChunking:
    """Tests for turn-preserving chunking."""

    def test_group_turns(self):
        turns = group_turns(make_records("uuaau"))
        assert [len(t) for t in turns] == [2, 2, 1]

    def test_chunks_respect_max(self):
        """Whole turns are packed up to max_messages."""
        chunks = chunk_records(make_records("ua" * 5), min_messages=2, max_messages=4)
        assert [len(c) for c in chunks] == [4, 4, 2]

    def test_turn_never_split(self):
        """A turn that would overflow starts a new chunk."""
        chunks = chunk_records(make_records("uaaa" + "u"), min_messages=2, max_messages=3)
        assert [len(c) for c in chunks] == [1, 3, 1]

    def test_long_turn_is_own_chunk(self):
        """A single turn longer than max_messages is kept whole."""
        chunks = chunk_records(make_records("u" + "a" * 6), min_messages=2, max_messages=4)
        assert [len(c) for c in chunks] == [1, 6]

    def test_short_tail_dropped_without_partial(self):
        chunks = chunk_records(
            make_records("uau"), min_messages=5, max_messages=10, include_partial=False
        )
        assert chunks == []

    def test_chunk_positions(self):
        chunk = chunk_records(make_records("uaua"), max_messages=10)[0]
        assert chunk.start_position == 0
        assert chunk.end_position == 40
        assert [m.role for m in chunk.messages] == ["user", "assistant", "user", "assistant"]

    def test_format_chunk(self):
        messages = [
            TranscriptMessage(role="user", text="Use Postgres "),
            TranscriptMessage(role="assistant", text="Done"),
        ]
        assert format_chunk(messages) == "User: Use Postgres\n\nAssistant: Done"
