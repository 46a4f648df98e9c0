"""Dependency-ordered task runner for npm monorepos."""
