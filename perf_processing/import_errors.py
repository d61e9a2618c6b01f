# Copyright 2024 The Fuchsia Authors. All rights reserved.
# Use of this source code is governed by a BSD-style license that can be
# found in the LICENSE file.
"""Errors reported while importing a perf trace.

Problems with individual trace records never raise: they are recorded as
`ImportDiagnostic`s and the import carries on.  Only structural mistakes
(misusing an importer, a broken parser module) raise a `PerfImportError`.
"""

import dataclasses
import enum
from typing import Optional


class ImportErrorKind(enum.Enum):
    """What went wrong with a single trace record."""

    # The line could not be split into the fields of a trace record.
    MALFORMED_LINE = enum.auto()
    # No handler is registered for the record's event name.
    UNRECOGNIZED_EVENT_TYPE = enum.auto()
    # A handler ran and reported that it could not parse the record.
    HANDLER_REJECTED = enum.auto()
    # A parser reported a more specific problem of its own.
    HANDLER_DIAGNOSTIC = enum.auto()


@dataclasses.dataclass(frozen=True)
class ImportDiagnostic:
    """One entry of the import error list."""

    kind: ImportErrorKind
    message: str
    line_number: Optional[int] = None
    event_name: Optional[str] = None

    def __str__(self) -> str:
        if self.line_number is None:
            return self.message
        return f"Line {self.line_number}: {self.message}"


class PerfImportError(Exception):
    """Base class for fatal import errors."""


class ImporterStateError(PerfImportError):
    """An importer was asked to import more than once."""


class ParserRegistrationError(PerfImportError):
    """A parser module was constructed but registered no event handlers."""
