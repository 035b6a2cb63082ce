"""Benchmark execution modules."""
