"""Typed KiCad document model and the binder that builds it."""
