#!/usr/bin/env python3
# Copyright 2024 The Fuchsia Authors. All rights reserved.
# Use of this source code is governed by a BSD-style license that can be
# found in the LICENSE file.
"""Unit tests for perf_parser.py."""

import unittest

from perf_processing import import_errors, parsers, perf_importing, perf_parser
from perf_processing.parsers import clock_sync, power, sched, workqueue
import trace_test_utils


class _SilentParser(perf_parser.Parser):
    """A broken parser: it registers nothing."""


class _OverridingParser(perf_parser.Parser):
    def __init__(self, importer) -> None:
        super().__init__(importer)
        self.register_event_handler("sched_switch", self.reject)

    def reject(self, event_name, cpu_number, ts, record) -> bool:
        return False


class ParserRegistryTest(unittest.TestCase):
    """ParserRegistry tests"""

    def test_empty(self) -> None:
        registry = perf_parser.ParserRegistry()
        self.assertEqual(registry.get_subtype_constructors(), ())
        self.assertEqual(len(registry), 0)

    def test_registration_order_with_duplicates(self) -> None:
        registry = perf_parser.ParserRegistry()
        registry.register_subtype(sched.SchedParser)
        registry.register_subtype(workqueue.WorkqueueParser)
        registry.register_subtype(sched.SchedParser)
        self.assertEqual(
            registry.get_subtype_constructors(),
            (
                sched.SchedParser,
                workqueue.WorkqueueParser,
                sched.SchedParser,
            ),
        )
        self.assertEqual(len(registry), 3)

    def test_constructors_are_a_snapshot(self) -> None:
        registry = trace_test_utils.registry_of(sched.SchedParser)
        constructors = registry.get_subtype_constructors()
        registry.register_subtype(power.PowerParser)
        self.assertEqual(constructors, (sched.SchedParser,))
        self.assertEqual(len(registry.get_subtype_constructors()), 2)

    def test_default_registry(self) -> None:
        registry = parsers.default_registry()
        self.assertEqual(
            registry.get_subtype_constructors(),
            (
                sched.SchedParser,
                workqueue.WorkqueueParser,
                power.PowerParser,
                clock_sync.ClockSyncParser,
            ),
        )
        # Every call builds an independent registry.
        self.assertIsNot(registry, parsers.default_registry())


class ParserTest(unittest.TestCase):
    """Parser construction tests"""

    def test_parser_sees_importer_model(self) -> None:
        importer = perf_importing.LinuxPerfImporter(
            trace_test_utils.registry_of(trace_test_utils.RecordingParser)
        )
        importer.import_records([])
        (parser,) = importer.parsers
        self.assertIs(parser.importer, importer)
        self.assertIs(parser.model, importer.model)

    def test_duplicate_registration_instantiates_twice(self) -> None:
        importer = perf_importing.LinuxPerfImporter(
            trace_test_utils.registry_of(
                trace_test_utils.RecordingParser,
                trace_test_utils.RecordingParser,
            )
        )
        importer.import_records(
            [trace_test_utils.make_record("sched_switch")]
        )
        first, second = importer.parsers
        self.assertIsNot(first, second)
        # The second instance registered last, so it gets the records.
        self.assertEqual(len(first.calls), 0)
        self.assertEqual(len(second.calls), 1)

    def test_later_parser_overrides_handler(self) -> None:
        importer = perf_importing.LinuxPerfImporter(
            trace_test_utils.registry_of(
                trace_test_utils.RecordingParser, _OverridingParser
            )
        )
        result = importer.import_records(
            [trace_test_utils.make_record("sched_switch")]
        )
        self.assertEqual(len(result.errors), 1)
        self.assertEqual(
            result.errors[0].kind,
            import_errors.ImportErrorKind.HANDLER_REJECTED,
        )

    def test_parser_without_handlers_fails_loudly(self) -> None:
        importer = perf_importing.LinuxPerfImporter(
            trace_test_utils.registry_of(
                trace_test_utils.RecordingParser, _SilentParser
            )
        )
        with self.assertRaises(import_errors.ParserRegistrationError):
            importer.import_records([])


if __name__ == "__main__":
    unittest.main()
