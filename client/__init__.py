"""Viewer side of the frame stream protocol."""
