"""Kernel ORM models."""

from asset_kernel.models.directory import Asset, Department, Location, User

__all__ = ["Asset", "Department", "Location", "User"]
