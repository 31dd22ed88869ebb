"""Requisition approval workflow."""
