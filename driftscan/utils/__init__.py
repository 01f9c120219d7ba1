"""Shared utilities for driftscan."""
