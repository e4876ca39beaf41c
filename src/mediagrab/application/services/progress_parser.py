from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

from mediagrab.domain.models.event import ProgressEvent

STDOUT = "stdout"
STDERR = "stderr"

PHASE_PERCENT = 95.0
EXTRACT_AUDIO_MARKER = "[ExtractAudio]"
MERGER_MARKER = "[Merger]"
BOT_DETECTION_MARKER = "Sign in to confirm"
BOT_DETECTION_MESSAGE = "Bot detection triggered. Try again later."

_RE_PERCENT = re.compile(r"(\d+(?:\.\d+)?)%")


@dataclass(frozen=True, slots=True)
class OutputLine:
    stream: str
    text: str


ClassificationRule = tuple[Callable[[OutputLine], bool], Callable[[OutputLine], ProgressEvent]]


class LineBuffer:
    """Reassembles newline-terminated lines from arbitrarily split byte chunks."""

    def __init__(self) -> None:
        self._pending = bytearray()

    def feed(self, chunk: bytes) -> list[str]:
        self._pending.extend(chunk)
        lines: list[str] = []
        while True:
            newline_at = self._pending.find(b"\n")
            if newline_at < 0:
                break
            raw = bytes(self._pending[: newline_at + 1])
            del self._pending[: newline_at + 1]
            lines.append(self._decode(raw))
        return lines

    def flush(self) -> list[str]:
        if not self._pending:
            return []
        raw = bytes(self._pending)
        self._pending.clear()
        return [self._decode(raw)]

    @property
    def pending_bytes(self) -> int:
        return len(self._pending)

    @staticmethod
    def _decode(raw: bytes) -> str:
        return raw.decode("utf-8", errors="replace").rstrip("\r\n")


def _percent_value(line: OutputLine) -> float | None:
    match = _RE_PERCENT.search(line.text)
    if match is None:
        return None
    return float(match.group(1))


def _build_percent_event(line: OutputLine) -> ProgressEvent:
    percent = max(0.0, min(100.0, _percent_value(line) or 0.0))
    return ProgressEvent.progress(percent, f"{percent:.1f}% - Downloading...")


DEFAULT_RULES: tuple[ClassificationRule, ...] = (
    (
        lambda line: line.stream == STDOUT and _percent_value(line) is not None,
        _build_percent_event,
    ),
    (
        lambda line: line.stream == STDOUT and EXTRACT_AUDIO_MARKER in line.text,
        lambda _line: ProgressEvent.progress(PHASE_PERCENT, "Extracting Audio..."),
    ),
    (
        lambda line: line.stream == STDOUT and MERGER_MARKER in line.text,
        lambda _line: ProgressEvent.progress(PHASE_PERCENT, "Merging Video/Audio..."),
    ),
    (
        lambda line: line.stream == STDERR and BOT_DETECTION_MARKER in line.text,
        lambda _line: ProgressEvent.error(BOT_DETECTION_MESSAGE),
    ),
)


def classify_line(line: OutputLine, rules: tuple[ClassificationRule, ...] = DEFAULT_RULES) -> ProgressEvent | None:
    if not line.text.strip():
        return None
    for predicate, build in rules:
        if predicate(line):
            return build(line)
    return None


class ProgressParser:
    """Turns extractor stdout/stderr chunks into progress events.

    Each stream keeps its own line buffer, so a line is only classified once it
    is complete. Lines that match no rule are dropped.
    """

    def __init__(self, rules: tuple[ClassificationRule, ...] = DEFAULT_RULES) -> None:
        self.rules = rules
        self._buffers = {STDOUT: LineBuffer(), STDERR: LineBuffer()}

    def feed(self, stream: str, chunk: bytes) -> list[ProgressEvent]:
        return self._classify(stream, self._buffer(stream).feed(chunk))

    def finish(self, stream: str) -> list[ProgressEvent]:
        return self._classify(stream, self._buffer(stream).flush())

    def _buffer(self, stream: str) -> LineBuffer:
        try:
            return self._buffers[stream]
        except KeyError as exc:
            raise ValueError(f"Unknown output stream: {stream}") from exc

    def _classify(self, stream: str, lines: list[str]) -> list[ProgressEvent]:
        events: list[ProgressEvent] = []
        for text in lines:
            event = classify_line(OutputLine(stream=stream, text=text), self.rules)
            if event is not None:
                events.append(event)
        return events
