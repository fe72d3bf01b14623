"""Clients for upstream analytics services."""
