"""
tests.core_daemon

Test suite for the core_daemon package of upro2api.

This package contains unit tests for the components of the core daemon,
including API endpoints, configuration handling, the device registry, frame
processing, the TCP listener and model validation.
"""
