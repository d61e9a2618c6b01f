# Copyright 2024 The Fuchsia Authors. All rights reserved.
# Use of this source code is governed by a BSD-style license that can be
# found in the LICENSE file.
"""Parser modules for families of perf trace events.

The importer knows nothing about individual trace events.  Each family of
events (sched_*, workqueue_*, ...) is handled by a `Parser` subclass whose
constructor registers one handler per event name it understands:

```
class WorkqueueParser(perf_parser.Parser):
    def __init__(self, importer):
        super().__init__(importer)
        self.register_event_handler(
            "workqueue_execute_start", self.execute_start_event
        )

    def execute_start_event(self, event_name, cpu_number, ts, record):
        ...
        return True


def register(registry: perf_parser.ParserRegistry) -> None:
    registry.register_subtype(WorkqueueParser)
```

A handler returning False makes the importer record a generic import error
for the record.  Handlers may also report their own, more specific problems
through `self.importer.import_error`; both end up in the import error list.
"""

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, List, Tuple

from perf_processing import event_handlers, trace_model

if TYPE_CHECKING:
    from perf_processing.perf_importing import LinuxPerfImporter

_LOGGER: logging.Logger = logging.getLogger(__name__)

ParserConstructor = Callable[["LinuxPerfImporter"], "Parser"]


class ParserRegistry:
    """The parser modules an importer instantiates, in registration order.

    Registering the same constructor twice yields two parser instances per
    import.
    """

    def __init__(self) -> None:
        self._constructors: List[ParserConstructor] = []

    def register_subtype(self, constructor: ParserConstructor) -> None:
        _LOGGER.debug(
            f"Registering parser {getattr(constructor, '__name__', constructor)}"
        )
        self._constructors.append(constructor)

    def get_subtype_constructors(self) -> Tuple[ParserConstructor, ...]:
        return tuple(self._constructors)

    def __len__(self) -> int:
        return len(self._constructors)


class Parser:
    """Base class of the parsers for one family of perf trace events."""

    def __init__(self, importer: "LinuxPerfImporter") -> None:
        self.importer: "LinuxPerfImporter" = importer
        self.model: trace_model.Model = importer.model

    def register_event_handler(
        self, event_name: str, handler: event_handlers.HandlerFn
    ) -> None:
        self.importer.register_event_handler(event_name, handler)
