# Copyright 2024 The Fuchsia Authors. All rights reserved.
# Use of this source code is governed by a BSD-style license that can be
# found in the LICENSE file.
"""Parses cpu_frequency and cpu_idle power events into per-cpu counters."""

import re
from typing import TYPE_CHECKING

from perf_processing import perf_parser

if TYPE_CHECKING:
    from perf_processing.perf_importing import TraceRecord

_POWER_STATE_PATTERN: re.Pattern[str] = re.compile(
    r"state=(\d+) cpu_id=(\d+)"
)

CLOCK_FREQUENCY_COUNTER: str = "Clock Frequency"
C_STATE_COUNTER: str = "C-State"

# cpu_idle reports (u32)-1 when a cpu leaves its idle state.
_PWR_EVENT_EXIT: int = 4294967295


class PowerParser(perf_parser.Parser):
    def __init__(self, importer) -> None:
        super().__init__(importer)
        self.register_event_handler("cpu_frequency", self.cpu_frequency_event)
        self.register_event_handler("cpu_idle", self.cpu_idle_event)

    def cpu_frequency_event(
        self,
        event_name: str,
        cpu_number: int,
        ts: float,
        record: "TraceRecord",
    ) -> bool:
        match = _POWER_STATE_PATTERN.match(record.details)
        if match is None:
            return False

        cpu = self.model.get_or_create_cpu(int(match.group(2)))
        cpu.add_counter_sample(
            CLOCK_FREQUENCY_COUNTER, ts, float(match.group(1))
        )
        return True

    def cpu_idle_event(
        self,
        event_name: str,
        cpu_number: int,
        ts: float,
        record: "TraceRecord",
    ) -> bool:
        match = _POWER_STATE_PATTERN.match(record.details)
        if match is None:
            return False

        state: int = int(match.group(1))
        if state == _PWR_EVENT_EXIT:
            state = 0
        cpu = self.model.get_or_create_cpu(int(match.group(2)))
        cpu.add_counter_sample(C_STATE_COUNTER, ts, float(state))
        return True


def register(registry: perf_parser.ParserRegistry) -> None:
    registry.register_subtype(PowerParser)
