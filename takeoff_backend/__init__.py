"""
Backend package for the takeoff projects API.

This package provides a FastAPI application that stores takeoff projects in a
relational database and their PDF drawings in S3-compatible object storage.
"""
