# Copyright 2024 The Fuchsia Authors. All rights reserved.
# Use of this source code is governed by a BSD-style license that can be
# found in the LICENSE file.
"""The parsers bundled with perf_processing."""

from perf_processing import perf_parser
from perf_processing.parsers import clock_sync, power, sched, workqueue


def default_registry() -> perf_parser.ParserRegistry:
    """Returns a new registry holding every bundled parser."""
    registry = perf_parser.ParserRegistry()
    sched.register(registry)
    workqueue.register(registry)
    power.register(registry)
    clock_sync.register(registry)
    return registry
