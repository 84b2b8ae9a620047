"""Kernel services shared by the modules."""
