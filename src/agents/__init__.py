"""Agents: mention resolution, provider adapters, tool agents and the per-target dispatch pipeline."""
