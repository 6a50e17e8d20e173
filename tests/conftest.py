"""Shared pytest fixtures."""

from __future__ import annotations

import logging
import os

import pytest
import structlog

from plan10.models.config import Plan10Config, ServerDefinition
from plan10.services import config_store
from plan10.services.deploy_planner import SCRIPT_NAMES

from tests.mock_ssh import MockRemoteSession


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep the developer's PLAN10_* variables out of every test."""
    for key in list(os.environ):
        if key.startswith("PLAN10_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def _reset_logging():
    """Drop handlers bound to a CliRunner stream once the test is over."""
    yield
    structlog.reset_defaults()
    root = logging.getLogger()
    for handler in list(root.handlers):
        if type(handler) is logging.StreamHandler:
            root.removeHandler(handler)


@pytest.fixture
def mock_session():
    """Provide a fresh MockRemoteSession."""
    return MockRemoteSession()


@pytest.fixture
def sample_config():
    cfg = Plan10Config()
    cfg.servers["mac1"] = ServerDefinition(name="mac1", host="10.0.0.5", user="admin")
    cfg.servers["mini"] = ServerDefinition(
        name="mini", host="mini.local", user="ops", port=2222, tags=["lab"],
    )
    cfg.client.default_server = "mac1"
    return cfg


@pytest.fixture
def config_file(tmp_path, sample_config):
    """sample_config written to a temp config.toml."""
    path = tmp_path / "config" / "config.toml"
    config_store.save(sample_config, path)
    return path


@pytest.fixture
def asset_tree(tmp_path):
    """A local source directory shaped like a Plan 10 checkout."""
    root = tmp_path / "assets"
    (root / "scripts").mkdir(parents=True)
    (root / "server_setup.sh").write_text("#!/bin/bash\necho setup\n")
    for name in SCRIPT_NAMES:
        (root / "scripts" / name).write_text(f"#!/bin/bash\necho {name}\n")
    (root / "caffeinate.plist").write_text("<plist version=\"1.0\"></plist>\n")
    (root / "docs").mkdir()
    (root / "docs" / "README.md").write_text("# Plan 10\n")
    return root
