"""Test package for the file conversion service."""
