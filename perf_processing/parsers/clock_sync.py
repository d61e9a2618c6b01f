# Copyright 2024 The Fuchsia Authors. All rights reserved.
# Use of this source code is governed by a BSD-style license that can be
# found in the LICENSE file.
"""Parses the clock sync markers written to trace_marker.

A tracing agent writes

    tracing_mark_write: trace_event_clock_sync: parent_ts=23816.083

to tie the perf clock to the clock of the trace it is embedded in.  Newer
agents may also write "realtime_ts=<ms since epoch>".
"""

import re
from typing import TYPE_CHECKING

from perf_processing import event_handlers, perf_parser, trace_model

if TYPE_CHECKING:
    from perf_processing.perf_importing import TraceRecord

CLOCK_SYNC_EVENT_NAME: str = event_handlers.marker_event_name(
    "trace_event_clock_sync"
)

_PARENT_TS_PATTERN: re.Pattern[str] = re.compile(r"parent_ts=(\d+(?:\.\d*)?)")
_REALTIME_TS_PATTERN: re.Pattern[str] = re.compile(r"realtime_ts=(\d+)")


class ClockSyncParser(perf_parser.Parser):
    def __init__(self, importer) -> None:
        super().__init__(importer)
        self.register_event_handler(
            CLOCK_SYNC_EVENT_NAME, self.trace_marker_clock_sync_event
        )

    def trace_marker_clock_sync_event(
        self,
        event_name: str,
        cpu_number: int,
        ts: float,
        record: "TraceRecord",
    ) -> bool:
        match = _PARENT_TS_PATTERN.search(record.details)
        if match is not None:
            # parent_ts is in seconds.
            self.model.clock_sync_records.append(
                trace_model.ClockSyncRecord(
                    sync_id="parent",
                    perf_ts=ts,
                    other_ts=float(match.group(1)) * 1000.0,
                )
            )
            return True

        match = _REALTIME_TS_PATTERN.search(record.details)
        if match is not None:
            self.model.clock_sync_records.append(
                trace_model.ClockSyncRecord(
                    sync_id="realtime",
                    perf_ts=ts,
                    other_ts=float(match.group(1)),
                )
            )
            return True

        return False


def register(registry: perf_parser.ParserRegistry) -> None:
    registry.register_subtype(ClockSyncParser)
