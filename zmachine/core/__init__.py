"""Core types shared across zmachine."""
