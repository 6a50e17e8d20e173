"""Plan 10 - run a MacBook as a headless server and manage it over SSH."""

__version__ = "0.1.0"
