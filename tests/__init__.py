"""Series canary test suite.

- unit/: one module per canary.lib module, plus the CLI entry point
- integration/: hours of simulated canary runs against the in-memory store

fake_store.py holds the in-memory remote-write/query double used by both.
"""
