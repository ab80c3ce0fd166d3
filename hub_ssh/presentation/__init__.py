"""
Presentation layer: the FastAPI application and its endpoints.
"""
