"""
tests.integration

Integration test suite for the upro2api project.

This package contains end-to-end tests that verify the correct functioning of
multiple components together: frames received over TCP, decoded, stored and
served through the API.
"""
