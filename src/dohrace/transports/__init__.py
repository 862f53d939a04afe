"""Upstream query transports."""
