"""Volunteer and teacher coordination portal: visibility core."""

__version__ = "0.3.0"
