"""Thin wrappers over the operating system (files, UUIDs, subprocesses)."""
