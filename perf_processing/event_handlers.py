# Copyright 2024 The Fuchsia Authors. All rights reserved.
# Use of this source code is governed by a BSD-style license that can be
# found in the LICENSE file.
"""Maps trace event names to the functions that handle them."""

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Dict, List, Optional

if TYPE_CHECKING:
    from perf_processing.perf_importing import TraceRecord

_LOGGER: logging.Logger = logging.getLogger(__name__)

# Events written through the trace_marker file all carry this event name.
# Their first "<tag>:" word is folded into the name they are dispatched under,
# e.g. "tracing_mark_write:trace_event_clock_sync".
TRACE_MARKER_EVENT_NAME: str = "tracing_mark_write"

# A handler receives (event_name, cpu_number, timestamp, record) and returns
# True when it understood and consumed the record.
HandlerFn = Callable[[str, int, float, "TraceRecord"], bool]


def marker_event_name(tag: str) -> str:
    """The name a trace_marker event tagged `tag` is dispatched under."""
    return f"{TRACE_MARKER_EVENT_NAME}:{tag}"


class EventHandlerRegistry:
    """A plain mapping from event name to handler.

    A later registration for an event name replaces the earlier one.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, HandlerFn] = {}

    def register(self, event_name: str, handler: HandlerFn) -> None:
        if event_name in self._handlers:
            _LOGGER.debug(f"Replacing handler for event {event_name}")
        self._handlers[event_name] = handler

    def lookup(self, event_name: str) -> Optional[HandlerFn]:
        return self._handlers.get(event_name)

    def event_names(self) -> List[str]:
        return sorted(self._handlers)

    def __contains__(self, event_name: object) -> bool:
        return event_name in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)
