"""Core configuration, exceptions and date handling."""
