"""
Project registry and HTTP routes.
"""
