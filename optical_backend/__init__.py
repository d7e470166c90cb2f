"""
Backend package for the optical shop API.

This package provides a FastAPI application that serves the product
catalog, customer inquiries and contacts from flat JSON files, plus an
image blob store and a Python client for the API.
"""
