# Copyright 2024 The Fuchsia Authors. All rights reserved.
# Use of this source code is governed by a BSD-style license that can be
# found in the LICENSE file.
"""Parses workqueue_* kernel trace events into slices on kworker threads."""

import re
from typing import TYPE_CHECKING

from perf_processing import perf_parser

if TYPE_CHECKING:
    from perf_processing.perf_importing import TraceRecord

_EXECUTE_START_PATTERN: re.Pattern[str] = re.compile(
    r"work struct (.+): function (\S+)"
)
_EXECUTE_END_PATTERN: re.Pattern[str] = re.compile(r"work struct (.+)")

WORKQUEUE_CATEGORY: str = "workqueue"


class WorkqueueParser(perf_parser.Parser):
    def __init__(self, importer) -> None:
        super().__init__(importer)
        self.register_event_handler(
            "workqueue_execute_start", self.execute_start_event
        )
        self.register_event_handler(
            "workqueue_execute_end", self.execute_end_event
        )
        self.register_event_handler(
            "workqueue_queue_work", self.execute_queue_work
        )
        self.register_event_handler(
            "workqueue_activate_work", self.execute_activate_work
        )

    def execute_start_event(
        self,
        event_name: str,
        cpu_number: int,
        ts: float,
        record: "TraceRecord",
    ) -> bool:
        match = _EXECUTE_START_PATTERN.match(record.details)
        if match is None:
            return False

        thread = self.importer.get_or_create_kernel_thread(
            record.thread_name, record.tid, record.tgid
        )
        thread.begin_slice(
            WORKQUEUE_CATEGORY,
            match.group(2),
            ts,
            args={"work_struct": match.group(1)},
        )
        return True

    def execute_end_event(
        self,
        event_name: str,
        cpu_number: int,
        ts: float,
        record: "TraceRecord",
    ) -> bool:
        if _EXECUTE_END_PATTERN.match(record.details) is None:
            return False

        thread = self.importer.get_or_create_kernel_thread(
            record.thread_name, record.tid, record.tgid
        )
        if thread.end_slice(ts) is None:
            self.importer.import_error(
                f"workqueue_execute_end without a matching start on thread "
                f"{record.tid}",
                record,
            )
        return True

    # Queueing and activation carry nothing the model tracks yet.
    def execute_queue_work(
        self,
        event_name: str,
        cpu_number: int,
        ts: float,
        record: "TraceRecord",
    ) -> bool:
        return True

    def execute_activate_work(
        self,
        event_name: str,
        cpu_number: int,
        ts: float,
        record: "TraceRecord",
    ) -> bool:
        return True


def register(registry: perf_parser.ParserRegistry) -> None:
    registry.register_subtype(WorkqueueParser)
