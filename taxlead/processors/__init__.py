"""Readers turning uploaded files into raw row mappings."""
