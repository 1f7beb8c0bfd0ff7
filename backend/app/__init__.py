"""Toilet Finder backend."""
