"""Shared test fixtures: record factories and in-memory blob providers."""
