"""Asset assignment: delivery tickets and asset movements."""
