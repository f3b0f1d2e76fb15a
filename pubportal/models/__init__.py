"""Data models for the portal.

This package contains Pydantic models for request/response validation
and the SQLAlchemy table definitions.
"""
