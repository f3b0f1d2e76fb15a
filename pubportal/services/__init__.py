"""Business logic services.

This package contains service classes and helpers that orchestrate
repositories, object storage and document rendering for the routers.
"""
