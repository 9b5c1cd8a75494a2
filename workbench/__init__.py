"""Workbench: async client and terminal front end for the Workbench AI backend."""

__version__ = "0.1.0"
