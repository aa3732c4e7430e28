"""Admission webhook HTTP API."""
