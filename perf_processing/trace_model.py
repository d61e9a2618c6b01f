# Copyright 2024 The Fuchsia Authors. All rights reserved.
# Use of this source code is governed by a BSD-style license that can be
# found in the LICENSE file.
"""Trace model data structures.

Timestamps and durations throughout the model are expressed in milliseconds.
"""

import abc
import dataclasses
import enum
from typing import Any, Dict, Iterator, List, Optional

from perf_processing import import_errors


class ModelEntity(abc.ABC):
    """Display capability shared by the entities of a trace model."""

    @property
    @abc.abstractmethod
    def user_friendly_name(self) -> str:
        ...

    @property
    @abc.abstractmethod
    def user_friendly_details(self) -> str:
        ...


class Event:
    """Base class for all trace events in a trace model.  Contains fields that
    are common to all trace event types.
    """

    def __init__(
        self,
        category: str,
        name: str,
        start: float,
        pid: int,
        tid: int,
        args: Dict[str, Any],
    ) -> None:
        self.category: str = category
        self.name: str = name
        self.start: float = start
        self.pid: int = pid
        self.tid: int = tid
        # Any extra arguments that the event contains.
        self.args: Dict[str, Any] = args.copy()


class DurationEvent(Event):
    """An event which describes work that is happening synchronously on one
    thread or one cpu.

    A DurationEvent whose `duration` is None is still open: its end has not
    been seen yet.
    """

    def __init__(
        self,
        duration: Optional[float],
        parent: Optional["DurationEvent"],
        child_durations: List["DurationEvent"],
        base: Event,
    ) -> None:
        super().__init__(
            base.category, base.name, base.start, base.pid, base.tid, base.args
        )
        self.duration: Optional[float] = duration
        self.parent: Optional[DurationEvent] = parent
        self.child_durations: List[DurationEvent] = child_durations

    @property
    def end(self) -> Optional[float]:
        if self.duration is None:
            return None
        return self.start + self.duration


@dataclasses.dataclass
class CounterSample:
    """A single value of a counter at a point in time."""

    timestamp: float
    value: float


class ThreadState(enum.Enum):
    """State of the outgoing thread of a context switch, from `prev_state`."""

    RUNNING = "R"
    SLEEPING = "S"
    UNINTERRUPTIBLE = "D"
    STOPPED = "T"
    TRACED = "t"
    DEAD = "X"
    ZOMBIE = "Z"
    PARKED = "P"
    IDLE = "I"
    UNKNOWN = "?"

    @classmethod
    def from_prev_state(cls, prev_state: str) -> "ThreadState":
        # "R+" means preempted while runnable; "D|K" and friends carry extra
        # flags after the first letter.
        try:
            return cls(prev_state[:1])
        except ValueError:
            return cls.UNKNOWN


class SchedulingRecord:
    """A record giving us information about cpu scheduling decisions"""

    def __init__(
        self,
        start: float,
        tid: int,
        prio: int | None,
        args: Dict[str, Any],
    ) -> None:
        self.start: float = start
        self.tid: int = tid
        self.prio: int | None = prio
        self.args: Dict[str, Any] = args.copy()

    def is_idle(self) -> bool:
        """
        True if the incoming thread is the per-cpu idle task
        """
        return self.tid == 0


class ContextSwitch(SchedulingRecord):
    """A record indicating that a thread has been scheduled on a given cpu"""

    def __init__(
        self,
        start: float,
        incoming_tid: int,
        outgoing_tid: int,
        incoming_prio: int | None,
        outgoing_prio: int | None,
        outgoing_state: ThreadState,
        args: Dict[str, Any],
    ):
        super().__init__(start, incoming_tid, incoming_prio, args.copy())
        self.outgoing_tid = outgoing_tid
        self.outgoing_prio = outgoing_prio
        self.outgoing_state = outgoing_state


class Waking(SchedulingRecord):
    """A record indicating that a thread has been unblocked and is waiting to run on a given cpu"""

    def __init__(
        self,
        start: float,
        tid: int,
        prio: int | None,
        args: Dict[str, Any],
    ) -> None:
        super().__init__(start, tid, prio, args.copy())


@dataclasses.dataclass(frozen=True)
class ClockSyncRecord:
    """Maps a timestamp in the perf clock domain onto another clock domain.

    `sync_id` names the other domain, e.g. "parent" or "realtime".
    """

    sync_id: str
    perf_ts: float
    other_ts: float


class Thread(ModelEntity):
    """A thread within a trace model."""

    def __init__(
        self,
        tid: int,
        pid: int,
        name: Optional[str] = None,
    ) -> None:
        self.tid: int = tid
        self.pid: int = pid
        self.name: str = "" if name is None else name
        self.events: List[Event] = []
        self._duration_stack: List[DurationEvent] = []

    @property
    def user_friendly_name(self) -> str:
        return self.name if self.name else str(self.tid)

    @property
    def user_friendly_details(self) -> str:
        return f"tid: {self.tid}"

    @property
    def open_slice_count(self) -> int:
        return len(self._duration_stack)

    def begin_slice(
        self,
        category: str,
        name: str,
        start: float,
        args: Optional[Dict[str, Any]] = None,
    ) -> DurationEvent:
        """Opens a slice on this thread, nested under any slice still open."""
        slice_event = DurationEvent(
            duration=None,
            parent=None,
            child_durations=[],
            base=Event(
                category, name, start, self.pid, self.tid, args or {}
            ),
        )
        if self._duration_stack:
            top_parent = self._duration_stack[-1]
            slice_event.parent = top_parent
            top_parent.child_durations.append(slice_event)
        self._duration_stack.append(slice_event)
        self.events.append(slice_event)
        return slice_event

    def end_slice(
        self, end: float, args: Optional[Dict[str, Any]] = None
    ) -> Optional[DurationEvent]:
        """Closes the innermost open slice.

        Returns:
            The closed slice, or None if no slice was open.
        """
        if not self._duration_stack:
            return None
        popped_begin = self._duration_stack.pop()
        popped_begin.duration = end - popped_begin.start
        if args:
            popped_begin.args = {**popped_begin.args, **args}
        return popped_begin


class Process(ModelEntity):
    """A single userland process within a trace model.

    A process is identified by its pid and exclusively owns its threads.
    Processes order by ascending pid.
    """

    def __init__(self, pid: int) -> None:
        self._pid: int = pid
        self._threads: Dict[int, Thread] = {}

    @staticmethod
    def compare(x: "Process", y: "Process") -> int:
        """Comparison between processes that orders by pid."""
        return x.pid - y.pid

    def compare_to(self, that: "Process") -> int:
        return Process.compare(self, that)

    def __lt__(self, other: "Process") -> bool:
        return self.compare_to(other) < 0

    def __repr__(self) -> str:
        return f"Process(pid={self._pid})"

    @property
    def pid(self) -> int:
        return self._pid

    @property
    def user_friendly_name(self) -> str:
        return str(self._pid)

    @property
    def user_friendly_details(self) -> str:
        return f"pid: {self._pid}"

    @property
    def threads(self) -> List[Thread]:
        """The threads of this process, ordered by tid."""
        return [self._threads[tid] for tid in sorted(self._threads)]

    def get_thread(self, tid: int) -> Optional[Thread]:
        return self._threads.get(tid)

    def get_or_create_thread(self, tid: int) -> Thread:
        if tid in self._threads:
            return self._threads[tid]
        thread = Thread(tid=tid, pid=self._pid)
        self._threads[tid] = thread
        return thread

    def remove_thread(self, tid: int) -> Optional[Thread]:
        return self._threads.pop(tid, None)

    def adopt_thread(self, thread: Thread) -> None:
        """Takes ownership of `thread`, which must not belong to another
        process anymore."""
        thread.pid = self._pid
        for event in thread.events:
            event.pid = self._pid
        self._threads[thread.tid] = thread

    def release(self) -> None:
        """Drops every thread owned by this process."""
        self._threads.clear()


class Cpu(ModelEntity):
    """A cpu within a trace model, holding what ran on it and its counters."""

    def __init__(self, cpu_number: int) -> None:
        self.cpu_number: int = cpu_number
        self.slices: List[DurationEvent] = []
        self.counters: Dict[str, List[CounterSample]] = {}
        self._running: Optional[DurationEvent] = None

    @property
    def user_friendly_name(self) -> str:
        return f"CPU {self.cpu_number}"

    @property
    def user_friendly_details(self) -> str:
        return f"cpu: {self.cpu_number}"

    @property
    def running_slice(self) -> Optional[DurationEvent]:
        return self._running

    def switch_running_thread(
        self,
        ts: float,
        tid: int,
        pid: int,
        name: str,
        args: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Ends the slice of whatever was running and starts one for `tid`.

        The idle task (tid 0) does not get a slice.
        """
        self.close_running_slice(ts)
        if tid == 0:
            return
        self._running = DurationEvent(
            duration=None,
            parent=None,
            child_durations=[],
            base=Event("sched", name, ts, pid, tid, args or {}),
        )

    def close_running_slice(self, ts: float) -> None:
        if self._running is None:
            return
        self._running.duration = ts - self._running.start
        self.slices.append(self._running)
        self._running = None

    def add_counter_sample(self, name: str, ts: float, value: float) -> None:
        self.counters.setdefault(name, []).append(CounterSample(ts, value))


class Model:
    """The root of the trace model."""

    def __init__(self) -> None:
        self._processes: Dict[int, Process] = {}
        self.cpus: Dict[int, Cpu] = {}
        self.scheduling_records: Dict[int, List[SchedulingRecord]] = {}
        self.clock_sync_records: List[ClockSyncRecord] = []
        self.import_errors: List[import_errors.ImportDiagnostic] = []
        self.min_timestamp: Optional[float] = None
        self.max_timestamp: Optional[float] = None

    @property
    def processes(self) -> List[Process]:
        """All processes, in ascending pid order."""
        return sorted(self._processes.values())

    def get_process(self, pid: int) -> Optional[Process]:
        return self._processes.get(pid)

    def get_or_create_process(self, pid: int) -> Process:
        if pid in self._processes:
            return self._processes[pid]
        process = Process(pid=pid)
        self._processes[pid] = process
        return process

    def move_thread(self, thread: Thread, pid: int) -> None:
        """Moves `thread` into process `pid`.

        The process the thread leaves is dropped if it owns no other thread.
        Cpu slices of the thread follow it to its new pid.
        """
        old_pid: int = thread.pid
        if old_pid == pid:
            return
        old_process = self._processes.get(old_pid)
        if old_process is not None:
            old_process.remove_thread(thread.tid)
            if not old_process.threads:
                del self._processes[old_pid]
        self.get_or_create_process(pid).adopt_thread(thread)

        for cpu in self.cpus.values():
            cpu_slices: List[DurationEvent] = list(cpu.slices)
            if cpu.running_slice is not None:
                cpu_slices.append(cpu.running_slice)
            for cpu_slice in cpu_slices:
                if cpu_slice.tid == thread.tid and cpu_slice.pid == old_pid:
                    cpu_slice.pid = pid

    def get_or_create_cpu(self, cpu_number: int) -> Cpu:
        if cpu_number not in self.cpus:
            self.cpus[cpu_number] = Cpu(cpu_number)
        return self.cpus[cpu_number]

    def all_threads(self) -> Iterator[Thread]:
        for process in self.processes:
            yield from process.threads

    def all_events(self) -> Iterator[Event]:
        for thread in self.all_threads():
            yield from thread.events

    def shift_timestamps(self, delta: float) -> None:
        """Moves every timestamp in the model by `delta` milliseconds."""
        for event in self.all_events():
            event.start += delta
        for cpu in self.cpus.values():
            for cpu_slice in cpu.slices:
                cpu_slice.start += delta
            if cpu.running_slice is not None:
                cpu.running_slice.start += delta
            for samples in cpu.counters.values():
                for sample in samples:
                    sample.timestamp += delta
        for records in self.scheduling_records.values():
            for record in records:
                record.start += delta
        if self.min_timestamp is not None:
            self.min_timestamp += delta
        if self.max_timestamp is not None:
            self.max_timestamp += delta

    def update_bounds(self) -> None:
        timestamps: List[float] = []
        for event in self.all_events():
            timestamps.append(event.start)
            if isinstance(event, DurationEvent) and event.end is not None:
                timestamps.append(event.end)
        for cpu in self.cpus.values():
            for cpu_slice in cpu.slices:
                timestamps.append(cpu_slice.start)
                if cpu_slice.end is not None:
                    timestamps.append(cpu_slice.end)
            for samples in cpu.counters.values():
                timestamps.extend(sample.timestamp for sample in samples)
        for records in self.scheduling_records.values():
            timestamps.extend(record.start for record in records)

        if not timestamps:
            self.min_timestamp = None
            self.max_timestamp = None
            return
        self.min_timestamp = min(timestamps)
        self.max_timestamp = max(timestamps)

    def total_duration(self) -> float:
        if self.min_timestamp is None or self.max_timestamp is None:
            return 0.0
        return self.max_timestamp - self.min_timestamp
