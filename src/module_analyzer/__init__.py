"""Resumable, bounded-concurrency driver for external CLI workers."""

__version__ = "0.1.0"
