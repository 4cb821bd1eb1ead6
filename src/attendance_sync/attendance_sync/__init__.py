"""Attendance Sync package.

Feature modules (events, policies, summaries, review, gate, sync, ...) expose a
thin Flask controller layer over service/repository layers. The ``kiosk``
sub-package is the device side: local queue, capture and sync client.
"""
