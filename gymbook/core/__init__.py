"""Core infrastructure: configuration, logging, errors, auth primitives."""
