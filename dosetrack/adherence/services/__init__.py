"""Adherence services."""
