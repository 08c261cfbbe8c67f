"""Kernel services: request repository and sequence allocation."""
