"""Static deployment manifest: which local assets go where for each mode.

Planning is pure. Nothing here touches the filesystem or the network;
missing sources are the executor's concern.
"""

from __future__ import annotations

import posixpath
from pathlib import Path

from plan10.models.deploy import DeployEntry, DeploymentCategory, DeploymentItem, DeployMode

SERVER_SETUP_SCRIPT = "server_setup.sh"
CAFFEINATE_PLIST = "caffeinate.plist"
REMOTE_SCRIPTS_DIR = "~/scripts"
REMOTE_LAUNCH_AGENTS_DIR = "~/Library/LaunchAgents"

# Sourced by the user's shell profile, never run directly.
NON_EXECUTABLE_SCRIPTS = frozenset({"setup_aliases.sh"})

SCRIPT_NAMES = ("temp", "battery", "power_diagnostics", "setup_aliases.sh")


def _script_entries() -> tuple[DeployEntry, ...]:
    return tuple(
        DeployEntry(
            local=Path("scripts") / name,
            remote=f"{REMOTE_SCRIPTS_DIR}/{name}",
            executable=name not in NON_EXECUTABLE_SCRIPTS,
        )
        for name in SCRIPT_NAMES
    )


def _setup_entry(*, executable: bool, required: bool) -> DeployEntry:
    return DeployEntry(
        local=Path(SERVER_SETUP_SCRIPT),
        remote=f"~/{SERVER_SETUP_SCRIPT}",
        executable=executable,
        required=required,
    )


def _plist_entry() -> DeployEntry:
    return DeployEntry(
        local=Path(CAFFEINATE_PLIST),
        remote=f"{REMOTE_LAUNCH_AGENTS_DIR}/{CAFFEINATE_PLIST}",
    )


def _parents(entries: tuple[DeployEntry, ...]) -> tuple[str, ...]:
    seen: list[str] = []
    for entry in entries:
        parent = posixpath.dirname(entry.remote.rstrip("/"))
        if parent and parent not in seen:
            seen.append(parent)
    return tuple(seen)


def _configs_item(entries: tuple[DeployEntry, ...]) -> DeploymentItem:
    return DeploymentItem(
        category=DeploymentCategory.configs,
        entries=entries,
        ensure_dirs=_parents(entries),
    )


def _scripts_item() -> DeploymentItem:
    return DeploymentItem(
        category=DeploymentCategory.scripts,
        entries=_script_entries(),
        ensure_dirs=(REMOTE_SCRIPTS_DIR,),
    )


def plan(mode: DeployMode | None) -> list[DeploymentItem]:
    """Ordered work items for *mode*; ``None`` means nothing to do."""
    if mode is None:
        return []

    if mode is DeployMode.all:
        return [
            DeploymentItem(
                category=DeploymentCategory.server_setup,
                entries=(_setup_entry(executable=True, required=True),),
            ),
            _scripts_item(),
            _configs_item((_plist_entry(),)),
            DeploymentItem(
                category=DeploymentCategory.services,
                entries=(DeployEntry(local=Path("docs"), remote="~/docs/"),),
            ),
        ]

    if mode is DeployMode.scripts_only:
        return [_scripts_item()]

    if mode is DeployMode.config_only:
        return [
            _configs_item((
                _plist_entry(),
                _setup_entry(executable=False, required=False),
            )),
        ]

    raise ValueError(f"unknown deploy mode: {mode!r}")


def entry_count(items: list[DeploymentItem]) -> int:
    return sum(len(item.entries) for item in items)
