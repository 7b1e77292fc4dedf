"""
Test support utilities for record-spine tests.

In-memory fakes for the connection, transaction and record store protocols
live in :mod:`tests._support.fakes`; entity fixtures in
:mod:`tests._support.entities`.
"""
