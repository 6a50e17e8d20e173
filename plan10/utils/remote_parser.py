"""Utilities for parsing the text output of macOS commands run on the target."""

from __future__ import annotations

import re
from typing import Any


# ---------------------------------------------------------------------------
# pmset -g batt
# ---------------------------------------------------------------------------

_POWER_SOURCE_RE = re.compile(r"drawing from '([^']+)'", re.IGNORECASE)


def parse_power_source(output: str) -> str:
    """Return e.g. ``"AC Power"`` / ``"Battery Power"``, or ``"unknown"``."""
    match = _POWER_SOURCE_RE.search(output)
    if match:
        return match.group(1)
    first = output.strip().splitlines()[0].strip() if output.strip() else ""
    if "AC Power" in first:
        return "AC Power"
    if "Battery Power" in first:
        return "Battery Power"
    return "unknown"


def is_on_battery(output: str) -> bool:
    return parse_power_source(output) == "Battery Power"


_BATTERY_PERCENT_RE = re.compile(r"(\d{1,3})%;")
_BATTERY_STATE_RE = re.compile(r"%;\s*([^;]+?)\s*;")
_BATTERY_REMAINING_RE = re.compile(r"(\d+:\d{2}) remaining")


def parse_battery(output: str) -> dict[str, Any]:
    """Charge, state and time left from the ``-InternalBattery`` line.

    Returns an empty dict on machines without a battery.
    """
    line = next((l for l in output.splitlines() if "InternalBattery" in l), "")
    percent = _BATTERY_PERCENT_RE.search(line)
    if not percent:
        return {}
    info: dict[str, Any] = {"percent": int(percent.group(1))}
    state = _BATTERY_STATE_RE.search(line)
    if state:
        info["state"] = state.group(1)
    remaining = _BATTERY_REMAINING_RE.search(line)
    if remaining:
        info["remaining"] = remaining.group(1)
    return info


# ---------------------------------------------------------------------------
# pgrep
# ---------------------------------------------------------------------------


def parse_pids(output: str) -> list[int]:
    return [int(tok) for tok in output.split() if tok.isdigit()]


# ---------------------------------------------------------------------------
# df -h
# ---------------------------------------------------------------------------

_PERCENT_RE = re.compile(r"^(\d+)%$")


def parse_df_line(output: str) -> dict[str, Any]:
    """Parse the last data row of ``df -h`` output.

    macOS adds inode columns after ``Capacity``; the mount point is always the
    last field and the first ``NN%`` field is the block usage.
    """
    lines = [l for l in output.strip().splitlines() if l.strip()]
    if not lines:
        return {}
    row = lines[-1].split()
    if not row or row[0] == "Filesystem" or len(row) < 6:
        return {}

    info: dict[str, Any] = {
        "filesystem": row[0],
        "size": row[1],
        "used": row[2],
        "available": row[3],
        "mount": row[-1],
    }
    for field in row[4:-1]:
        m = _PERCENT_RE.match(field)
        if m:
            info["capacity_percent"] = int(m.group(1))
            break
    return info
