"""Tests for Finance Manager."""
