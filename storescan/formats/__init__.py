"""Parsers for the on-disk formats written by store launchers."""
