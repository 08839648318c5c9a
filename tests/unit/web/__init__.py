"""Unit tests for the aether web route modules."""
