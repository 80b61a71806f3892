"""Core data structures: level arena, simulation clock and collaborator interfaces."""
