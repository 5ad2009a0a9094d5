"""
JUnit Report — Render a RunSummary as JUnit XML.

One testsuite ("Sync Job") with one testcase per attempted directive,
ordered by job index. Failed and timed-out jobs carry a <failure> element
whose body is the captured git diagnostic. Skipped projects appear as
<skipped/> testcases so CI dashboards show them.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .job import SyncStatus
from .reporter import RunSummary

logger = logging.getLogger(__name__)

SUITE_NAME = "Sync Job"


def render_junit(summary: RunSummary, label: str, timestamp: Optional[datetime] = None) -> ET.ElementTree:
    timestamp = timestamp or datetime.now(timezone.utc)
    outcomes = sorted(summary.outcomes, key=lambda o: o.job.index)

    testsuites = ET.Element("testsuites")
    suite = ET.SubElement(
        testsuites,
        "testsuite",
        {
            "name": SUITE_NAME,
            "tests": str(len(outcomes) + len(summary.skipped)),
            "failures": str(summary.errors),
            "errors": "0",
            "skipped": str(len(summary.skipped)),
            "time": f"{sum(o.duration for o in outcomes):.3f}",
            "timestamp": timestamp.astimezone(timezone.utc).isoformat(timespec="seconds"),
        },
    )

    for outcome in outcomes:
        case = ET.SubElement(
            suite,
            "testcase",
            {
                "name": outcome.job.directive.display_name,
                "classname": label,
                "time": f"{outcome.duration:.3f}",
            },
        )
        if outcome.ok:
            continue
        failure_type = "timeout" if outcome.status is SyncStatus.TIMED_OUT else "sync error"
        failure = ET.SubElement(
            case,
            "failure",
            {"message": outcome.message, "type": failure_type},
        )
        failure.text = outcome.reason or outcome.message

    for url in summary.skipped:
        case = ET.SubElement(suite, "testcase", {"name": url, "classname": label, "time": "0.000"})
        ET.SubElement(case, "skipped")

    ET.indent(testsuites)
    return ET.ElementTree(testsuites)


def write_junit(path: Path, summary: RunSummary, label: str) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    render_junit(summary, label).write(str(path), encoding="utf-8", xml_declaration=True)
    logger.info(f"[mirror] JUnit report written to {path}")
