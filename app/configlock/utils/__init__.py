"""Utility helpers for configlock."""
