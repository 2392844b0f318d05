"""Hierarchy resolution, hit-testing and the viewer state machine."""
