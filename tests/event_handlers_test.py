#!/usr/bin/env python3
# Copyright 2024 The Fuchsia Authors. All rights reserved.
# Use of this source code is governed by a BSD-style license that can be
# found in the LICENSE file.
"""Unit tests for event_handlers.py."""

import unittest

from perf_processing import event_handlers


def _accept(event_name, cpu_number, ts, record) -> bool:
    return True


def _reject(event_name, cpu_number, ts, record) -> bool:
    return False


class EventHandlerRegistryTest(unittest.TestCase):
    """EventHandlerRegistry tests"""

    def test_lookup_unregistered(self) -> None:
        registry = event_handlers.EventHandlerRegistry()
        self.assertIsNone(registry.lookup("sched_switch"))
        self.assertNotIn("sched_switch", registry)
        self.assertEqual(len(registry), 0)

    def test_register_and_lookup(self) -> None:
        registry = event_handlers.EventHandlerRegistry()
        registry.register("sched_switch", _accept)
        self.assertIs(registry.lookup("sched_switch"), _accept)
        self.assertIn("sched_switch", registry)

    def test_last_registration_wins(self) -> None:
        registry = event_handlers.EventHandlerRegistry()
        registry.register("sched_switch", _accept)
        registry.register("sched_switch", _reject)
        self.assertIs(registry.lookup("sched_switch"), _reject)
        self.assertEqual(len(registry), 1)

    def test_lookup_is_idempotent(self) -> None:
        registry = event_handlers.EventHandlerRegistry()
        registry.register("workqueue_execute_start", _accept)
        first = registry.lookup("workqueue_execute_start")
        second = registry.lookup("workqueue_execute_start")
        self.assertIs(first, second)

    def test_marker_event_names(self) -> None:
        registry = event_handlers.EventHandlerRegistry()
        clock_sync: str = event_handlers.marker_event_name(
            "trace_event_clock_sync"
        )
        self.assertEqual(
            clock_sync, "tracing_mark_write:trace_event_clock_sync"
        )
        registry.register(clock_sync, _accept)
        self.assertIs(
            registry.lookup("tracing_mark_write:trace_event_clock_sync"),
            _accept,
        )
        self.assertIsNone(registry.lookup("tracing_mark_write:other_tag"))
        self.assertIsNone(registry.lookup("tracing_mark_write"))

    def test_event_names_sorted(self) -> None:
        registry = event_handlers.EventHandlerRegistry()
        registry.register("sched_wakeup", _accept)
        registry.register("cpu_idle", _accept)
        registry.register("sched_switch", _accept)
        self.assertEqual(
            registry.event_names(),
            ["cpu_idle", "sched_switch", "sched_wakeup"],
        )


if __name__ == "__main__":
    unittest.main()
