# Copyright 2024 The Fuchsia Authors. All rights reserved.
# Use of this source code is governed by a BSD-style license that can be
# found in the LICENSE file.
"""Logic to build a trace Model from Linux perf / ftrace text output.

The importer splits each line into a `TraceRecord` and hands it to whichever
parser registered a handler for the record's event name.  Parsers are
instantiated from a `ParserRegistry` once per import; see perf_parser.py.
"""

import dataclasses
import enum
import logging
import os
import re
from collections.abc import Callable
from typing import Any, Dict, Iterable, List, Optional, TextIO, Tuple

from perf_processing import (
    event_handlers,
    import_errors,
    parsers,
    perf_parser,
    trace_model,
)

_LOGGER: logging.Logger = logging.getLogger(__name__)

# Trace lines look like one of:
#
#   <idle>-0     [001]  4467.843475: sched_switch: prev_comm=...
#   <idle>-0     [001] d..3  4467.843475: sched_switch: prev_comm=...
#   atrace-8170  ( 8170) [001] ...1  4467.843475: sched_switch: prev_comm=...
#   kworker/0:1-21  (-----) [000] d..3  4467.843475: sched_switch: ...
_IRQ_FLAGS: str = r"[dXxz.][NnpLlBb.][HhSs.][0-9a-f.]{1,2}"
_LINE_PATTERNS: Tuple[re.Pattern[str], ...] = (
    re.compile(
        r"^\s*(?P<comm>.+)-(?P<tid>\d+)\s+\[(?P<cpu>\d+)\]"
        r"\s+(?P<ts>\d+\.\d+):\s+(?P<event>\S+):\s?(?P<details>.*)$"
    ),
    re.compile(
        r"^\s*(?P<comm>.+)-(?P<tid>\d+)\s+\[(?P<cpu>\d+)\]\s+" + _IRQ_FLAGS
        + r"\s+(?P<ts>\d+\.\d+):\s+(?P<event>\S+):\s?(?P<details>.*)$"
    ),
    re.compile(
        r"^\s*(?P<comm>.+)-(?P<tid>\d+)\s+\(\s*(?P<tgid>\d+|-+)\)"
        r"\s+\[(?P<cpu>\d+)\](?:\s+" + _IRQ_FLAGS + r")?"
        r"\s+(?P<ts>\d+\.\d+):\s+(?P<event>\S+):\s?(?P<details>.*)$"
    ),
)

_MARKER_TAG_PATTERN: re.Pattern[str] = re.compile(r"^\s*(\w+):\s?(.*)$")
_TRACER_HEADER_PATTERN: re.Pattern[str] = re.compile(r"^\s*# tracer:")


@dataclasses.dataclass(frozen=True)
class TraceRecord:
    """One tokenized trace line.

    `timestamp` is in milliseconds.  For trace_marker events `event_name` is
    the composite "tracing_mark_write:<tag>" name and `details` is the text
    following the tag.
    """

    line_number: Optional[int]
    thread_name: str
    tid: int
    tgid: Optional[int]
    cpu: int
    timestamp: float
    event_name: str
    details: str


def parse_line(
    line: str, line_number: Optional[int] = None
) -> Optional[TraceRecord]:
    """Splits a trace line into a TraceRecord.

    Returns:
        The record, or None if the line does not look like a trace event.
    """
    for pattern in _LINE_PATTERNS:
        match = pattern.match(line)
        if match is not None:
            break
    else:
        return None

    groups: Dict[str, Any] = match.groupdict()
    tgid: Optional[int] = None
    if groups.get("tgid") and groups["tgid"].isdigit():
        tgid = int(groups["tgid"])

    event_name: str = groups["event"]
    details: str = groups["details"]
    if event_name == event_handlers.TRACE_MARKER_EVENT_NAME:
        tag_match = _MARKER_TAG_PATTERN.match(details)
        if tag_match is not None:
            event_name = event_handlers.marker_event_name(tag_match.group(1))
            details = tag_match.group(2)

    return TraceRecord(
        line_number=line_number,
        thread_name=groups["comm"].strip(),
        tid=int(groups["tid"]),
        tgid=tgid,
        cpu=int(groups["cpu"]),
        timestamp=float(groups["ts"]) * 1000.0,
        event_name=event_name,
        details=details,
    )


def _is_skippable(line: str) -> bool:
    stripped: str = line.strip()
    return not stripped or stripped.startswith("#")


def can_import(text: str) -> bool:
    """Whether `text` looks like perf / ftrace text output."""
    if _TRACER_HEADER_PATTERN.match(text):
        return True
    for line in text.splitlines():
        if _is_skippable(line):
            continue
        return parse_line(line) is not None
    return False


class ImporterState(enum.Enum):
    UNINITIALIZED = enum.auto()
    SCANNING = enum.auto()
    DONE = enum.auto()


@dataclasses.dataclass(frozen=True)
class ImportResult:
    """The model built by an import run, with every error recorded on the way."""

    model: trace_model.Model
    errors: Tuple[import_errors.ImportDiagnostic, ...]


ErrorSink = Callable[[import_errors.ImportDiagnostic], None]


class LinuxPerfImporter:
    """Imports one perf trace into a Model.

    An importer runs exactly once; create a new importer for every trace.

    `error_sink`, when given, is called with each `ImportDiagnostic` as it is
    recorded.  The diagnostic carries both the message and its context (kind,
    line number, event name), so the sink takes that one argument rather than
    a separate message and context.
    """

    def __init__(
        self,
        registry: perf_parser.ParserRegistry,
        model: Optional[trace_model.Model] = None,
        error_sink: Optional[ErrorSink] = None,
    ) -> None:
        self.model: trace_model.Model = (
            trace_model.Model() if model is None else model
        )
        self._registry: perf_parser.ParserRegistry = registry
        self._error_sink: Optional[ErrorSink] = error_sink
        self._event_handlers = event_handlers.EventHandlerRegistry()
        self._handler_registration_count: int = 0
        self._parsers: List[perf_parser.Parser] = []
        self._state: ImporterState = ImporterState.UNINITIALIZED
        # Maps tids to the tgid they were last seen with.
        self._tid_to_pid: Dict[int, int] = {}
        # Every thread of the model, whichever process currently owns it.
        self._threads_by_tid: Dict[int, trace_model.Thread] = {}
        self._record_count: int = 0
        self._last_timestamp: Optional[float] = None

    @property
    def state(self) -> ImporterState:
        return self._state

    @property
    def handler_registry(self) -> event_handlers.EventHandlerRegistry:
        return self._event_handlers

    @property
    def parsers(self) -> List[perf_parser.Parser]:
        return list(self._parsers)

    def register_event_handler(
        self, event_name: str, handler: event_handlers.HandlerFn
    ) -> None:
        self._event_handlers.register(event_name, handler)
        self._handler_registration_count += 1

    def import_error(
        self, message: str, record: Optional[TraceRecord] = None
    ) -> None:
        """Records a parser specific problem with `record`."""
        self._record_error(
            import_errors.ImportErrorKind.HANDLER_DIAGNOSTIC, message, record
        )

    def get_or_create_thread(
        self, tid: int, tgid: Optional[int] = None, name: Optional[str] = None
    ) -> trace_model.Thread:
        """Returns the thread `tid`, creating it and its process if needed.

        Without a known tgid the thread is placed in the process whose pid
        equals its tid.  Once its tgid turns up, the thread moves into that
        process.
        """
        if tgid is not None:
            self._tid_to_pid[tid] = tgid
        thread: Optional[trace_model.Thread] = self._threads_by_tid.get(tid)
        if thread is None:
            pid: int = self._tid_to_pid.get(tid, tid)
            thread = self.model.get_or_create_process(
                pid
            ).get_or_create_thread(tid)
            self._threads_by_tid[tid] = thread
        else:
            self._place_thread(thread)
        if name:
            thread.name = name
        return thread

    def get_or_create_kernel_thread(
        self, name: str, tid: int, tgid: Optional[int] = None
    ) -> trace_model.Thread:
        """Like get_or_create_thread, but keeps a name given earlier."""
        thread = self.get_or_create_thread(tid, tgid)
        if not thread.name:
            thread.name = name
        return thread

    def _place_thread(self, thread: trace_model.Thread) -> None:
        pid: int = self._tid_to_pid.get(thread.tid, thread.tid)
        if thread.pid != pid:
            _LOGGER.debug(f"Moving thread {thread.tid} into process {pid}")
            self.model.move_thread(thread, pid)
    def import_text(self, text: str) -> ImportResult:
        return self.import_lines(text.splitlines())

    def import_lines(self, lines: Iterable[str]) -> ImportResult:
        """Tokenizes and imports raw trace lines."""
        self._begin_import()
        for line_number, line in enumerate(lines, start=1):
            line = line.rstrip("\r\n")
            if _is_skippable(line):
                continue
            record: Optional[TraceRecord] = parse_line(line, line_number)
            if record is None:
                self._record_error(
                    import_errors.ImportErrorKind.MALFORMED_LINE,
                    f"Unrecognized line: {line}",
                    line_number=line_number,
                )
                continue
            self._dispatch(record)
        return self._finish_import()

    def import_records(self, records: Iterable[TraceRecord]) -> ImportResult:
        """Imports records that were already tokenized."""
        self._begin_import()
        for record in records:
            self._dispatch(record)
        return self._finish_import()

    def _begin_import(self) -> None:
        if self._state is not ImporterState.UNINITIALIZED:
            raise import_errors.ImporterStateError(
                f"Importer is {self._state.name}; "
                f"use a new importer for every trace"
            )
        self._state = ImporterState.SCANNING

        for constructor in self._registry.get_subtype_constructors():
            registrations_before: int = self._handler_registration_count
            parser: perf_parser.Parser = constructor(self)
            if self._handler_registration_count == registrations_before:
                raise import_errors.ParserRegistrationError(
                    f"Parser {type(parser).__name__} registered no event "
                    f"handlers"
                )
            self._parsers.append(parser)
        _LOGGER.debug(
            f"Created {len(self._parsers)} parsers handling "
            f"{len(self._event_handlers)} event types"
        )

    def _dispatch(self, record: TraceRecord) -> None:
        self._record_count += 1
        if record.tgid is not None:
            self._tid_to_pid[record.tid] = record.tgid
            if record.tid in self._threads_by_tid:
                self._place_thread(self._threads_by_tid[record.tid])
        if (
            self._last_timestamp is None
            or record.timestamp > self._last_timestamp
        ):
            self._last_timestamp = record.timestamp

        handler: Optional[
            event_handlers.HandlerFn
        ] = self._event_handlers.lookup(record.event_name)
        if handler is None:
            self._record_error(
                import_errors.ImportErrorKind.UNRECOGNIZED_EVENT_TYPE,
                f"Unknown event {record.event_name} ({record.details})",
                record,
            )
            return
        if not handler(
            record.event_name, record.cpu, record.timestamp, record
        ):
            self._record_error(
                import_errors.ImportErrorKind.HANDLER_REJECTED,
                f"Malformed {record.event_name} event ({record.details})",
                record,
            )

    def _finish_import(self) -> ImportResult:
        model: trace_model.Model = self.model

        if self._last_timestamp is not None:
            for cpu in model.cpus.values():
                cpu.close_running_slice(self._last_timestamp)

        # Sort events by their start timestamp.  The sort is stable, which
        # keeps the record order of events sharing a start timestamp.
        open_slice_count: int = 0
        for thread in model.all_threads():
            thread.events.sort(key=lambda x: x.start)
            open_slice_count += thread.open_slice_count
        if open_slice_count > 0:
            _LOGGER.warning(
                f"Warning, finished processing trace events with "
                f"{open_slice_count} in progress slices"
            )

        model.update_bounds()
        self._apply_clock_sync()

        self._state = ImporterState.DONE
        _LOGGER.info(
            f"Imported {self._record_count} trace records into "
            f"{len(model.processes)} processes with "
            f"{len(model.import_errors)} import errors"
        )
        return ImportResult(model=model, errors=tuple(model.import_errors))

    def _apply_clock_sync(self) -> None:
        """Moves the model into the parent clock domain, if the trace has a
        clock sync marker for it."""
        for record in self.model.clock_sync_records:
            if record.sync_id == "parent":
                delta: float = record.other_ts - record.perf_ts
                _LOGGER.debug(f"Shifting timestamps by {delta} ms")
                self.model.shift_timestamps(delta)
                return

    def _record_error(
        self,
        kind: import_errors.ImportErrorKind,
        message: str,
        record: Optional[TraceRecord] = None,
        line_number: Optional[int] = None,
    ) -> None:
        if record is not None and line_number is None:
            line_number = record.line_number
        diagnostic = import_errors.ImportDiagnostic(
            kind=kind,
            message=message,
            line_number=line_number,
            event_name=record.event_name if record is not None else None,
        )
        self.model.import_errors.append(diagnostic)
        _LOGGER.warning(str(diagnostic))
        if self._error_sink is not None:
            self._error_sink(diagnostic)


def import_trace(
    lines: Iterable[str],
    registry: Optional[perf_parser.ParserRegistry] = None,
) -> ImportResult:
    """Imports trace lines with the given parsers (all bundled ones by default).

    Args:
        lines: The raw trace lines.
        registry: The parser modules to use.

    Returns:
        The model and the import errors recorded while building it.
    """
    if registry is None:
        registry = parsers.default_registry()
    return LinuxPerfImporter(registry).import_lines(lines)


def create_model_from_file_path(
    path: str | os.PathLike[Any],
) -> trace_model.Model:
    """Create a Model from a file path.

    Args:
        path: The path to the file.

    Returns:
        A Model object.
    """

    with open(path, "r") as file:
        return create_model_from_file(file)


def create_model_from_file(file: TextIO) -> trace_model.Model:
    """Create a Model from a file.

    Args:
        file: The file to read.

    Returns:
        A Model object.
    """

    return import_trace(file).model


def create_model_from_string(trace_text: str) -> trace_model.Model:
    """Create a Model from raw perf trace text.

    Args:
        trace_text: The trace text to parse.

    Returns:
        A Model object.
    """

    return import_trace(trace_text.splitlines()).model
