"""
tests

Test suite for the upro2api project.

This package contains unit and integration tests for all components of the
upro2api project, including the core daemon and the Upro frame decoder.

Modules:
    - frames: Sample frames shared by the suite
    - test_decode: Tests for the upro_decoder package

Subpackages:
    - core_daemon: Tests for the FastAPI backend and TCP listener
    - integration: End-to-end and cross-component tests
"""
