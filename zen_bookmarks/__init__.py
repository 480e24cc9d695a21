"""Zen browser bookmark search over safe database snapshots."""
