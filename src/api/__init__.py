"""HTTP surface and turn orchestration services."""
