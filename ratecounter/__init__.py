"""Sliding-window request counter served over HTTP."""
