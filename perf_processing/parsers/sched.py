# Copyright 2024 The Fuchsia Authors. All rights reserved.
# Use of this source code is governed by a BSD-style license that can be
# found in the LICENSE file.
"""Parses sched_* kernel trace events."""

import re
from typing import TYPE_CHECKING

from perf_processing import perf_parser, trace_model

if TYPE_CHECKING:
    from perf_processing.perf_importing import TraceRecord

_SCHED_SWITCH_PATTERN: re.Pattern[str] = re.compile(
    r"prev_comm=(.+) prev_pid=(\d+) prev_prio=(-?\d+) prev_state=(\S+)"
    r" ==> next_comm=(.+) next_pid=(\d+) next_prio=(-?\d+)"
)
# Kernels before 4.x also print "success=1" ahead of target_cpu.
_SCHED_WAKEUP_PATTERN: re.Pattern[str] = re.compile(
    r"comm=(.+) pid=(\d+) prio=(-?\d+)(?: success=\d+)? target_cpu=(\d+)"
)


class SchedParser(perf_parser.Parser):
    """Builds per-cpu run slices and scheduling records."""

    def __init__(self, importer) -> None:
        super().__init__(importer)
        self.register_event_handler("sched_switch", self.sched_switch_event)
        self.register_event_handler("sched_wakeup", self.sched_wakeup_event)
        self.register_event_handler("sched_waking", self.sched_wakeup_event)

    def sched_switch_event(
        self,
        event_name: str,
        cpu_number: int,
        ts: float,
        record: "TraceRecord",
    ) -> bool:
        match = _SCHED_SWITCH_PATTERN.match(record.details)
        if match is None:
            return False

        prev_comm: str = match.group(1)
        prev_tid: int = int(match.group(2))
        prev_prio: int = int(match.group(3))
        prev_state = trace_model.ThreadState.from_prev_state(match.group(4))
        next_comm: str = match.group(5)
        next_tid: int = int(match.group(6))
        next_prio: int = int(match.group(7))

        if prev_tid != 0:
            self.importer.get_or_create_thread(prev_tid, name=prev_comm)
        next_pid: int = 0
        if next_tid != 0:
            next_pid = self.importer.get_or_create_thread(
                next_tid, name=next_comm
            ).pid

        cpu = self.model.get_or_create_cpu(cpu_number)
        cpu.switch_running_thread(
            ts, next_tid, next_pid, next_comm, args={"prio": next_prio}
        )
        self.model.scheduling_records.setdefault(cpu_number, []).append(
            trace_model.ContextSwitch(
                start=ts,
                incoming_tid=next_tid,
                outgoing_tid=prev_tid,
                incoming_prio=next_prio,
                outgoing_prio=prev_prio,
                outgoing_state=prev_state,
                args={"prev_comm": prev_comm, "next_comm": next_comm},
            )
        )
        return True

    def sched_wakeup_event(
        self,
        event_name: str,
        cpu_number: int,
        ts: float,
        record: "TraceRecord",
    ) -> bool:
        match = _SCHED_WAKEUP_PATTERN.match(record.details)
        if match is None:
            return False

        comm: str = match.group(1)
        tid: int = int(match.group(2))
        prio: int = int(match.group(3))
        target_cpu: int = int(match.group(4))

        self.importer.get_or_create_thread(tid, name=comm)
        self.model.scheduling_records.setdefault(target_cpu, []).append(
            trace_model.Waking(
                start=ts,
                tid=tid,
                prio=prio,
                args={"comm": comm, "waker_tid": record.tid},
            )
        )
        return True


def register(registry: perf_parser.ParserRegistry) -> None:
    registry.register_subtype(SchedParser)
