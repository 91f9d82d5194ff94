"""Tests for Milou Ops.

Test Structure:
    tests/
    ├── conftest.py          # Shared pytest fixtures
    └── unit/                # Unit tests (no external deps)
        ├── test_certificate_manager.py
        ├── test_config.py
        ├── test_configuration_store.py
        ├── test_entries.py
        ├── test_error_handling.py
        ├── test_generate.py
        ├── test_migrations.py
        └── test_permissions.py

Usage:
    # Run all tests
    pytest

    # Run only unit tests
    pytest -m unit

    # Run with verbose output
    pytest -v
"""
