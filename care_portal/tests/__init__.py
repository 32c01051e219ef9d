"""Tests for :mod:`care_portal`."""
