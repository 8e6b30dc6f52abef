"""Claim form and upload data models."""
