"""Embedded runtime management.

Selects the runtime layout for the host platform, prepares an extracted tree
for execution and owns the resulting runtime instances."""
