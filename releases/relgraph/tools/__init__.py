"""Operator tools for the release graph."""
