"""Terminal front end for Workbench."""
