#!/usr/bin/env python3
# Copyright 2024 The Fuchsia Authors. All rights reserved.
# Use of this source code is governed by a BSD-style license that can be
# found in the LICENSE file.

"""
Imports a perf / ftrace text trace and writes a JSON summary of the model.
"""

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from perf_processing import parsers, perf_importing

_LOGGER: logging.Logger = logging.getLogger(__name__)


def summarize(result: perf_importing.ImportResult) -> Dict[str, Any]:
    """Turns an import result into a JSON serializable summary."""
    model = result.model
    processes: List[Dict[str, Any]] = []
    for process in model.processes:
        processes.append(
            {
                "pid": process.pid,
                "name": process.user_friendly_name,
                "threads": [
                    {
                        "tid": thread.tid,
                        "name": thread.user_friendly_name,
                        "event_count": len(thread.events),
                    }
                    for thread in process.threads
                ],
            }
        )
    cpus: List[Dict[str, Any]] = [
        {
            "cpu": cpu.cpu_number,
            "slice_count": len(cpu.slices),
            "counters": {
                name: len(samples) for name, samples in cpu.counters.items()
            },
        }
        for _, cpu in sorted(model.cpus.items())
    ]
    return {
        "min_timestamp_ms": model.min_timestamp,
        "max_timestamp_ms": model.max_timestamp,
        "processes": processes,
        "cpus": cpus,
        "import_errors": [str(error) for error in result.errors],
    }


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Builds a process/thread model from a perf or ftrace"
        " text trace and reports what was found.",
    )
    parser.add_argument(
        "path_to_trace", type=str, help="Path to the perf/ftrace text trace"
    )
    parser.add_argument(
        "--output_path",
        type=str,
        default=None,
        help="Where to write the JSON summary; stdout when omitted",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log every import error and parser registration",
    )
    args: argparse.Namespace = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    with open(args.path_to_trace, "r") as trace_file:
        trace_text: str = trace_file.read()
    if not perf_importing.can_import(trace_text):
        _LOGGER.error(f"{args.path_to_trace} is not a perf text trace")
        return 1

    importer = perf_importing.LinuxPerfImporter(parsers.default_registry())
    result = importer.import_text(trace_text)
    summary: Dict[str, Any] = summarize(result)

    if args.output_path is None:
        json.dump(summary, sys.stdout, indent=4)
        sys.stdout.write("\n")
    else:
        with open(args.output_path, "w") as json_file:
            json.dump(summary, json_file, indent=4)
        _LOGGER.info(f"Wrote summary into {args.output_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
