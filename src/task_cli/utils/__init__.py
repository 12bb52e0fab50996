"""Utility helpers for Task CLI."""
