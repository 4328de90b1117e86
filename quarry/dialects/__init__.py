"""Dialects: capability strategies, the dialect registry and per-dialect DDL compilers."""
