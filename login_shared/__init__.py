"""
Shared building blocks for the login session client.

This package contains the data models, abstract interfaces, exception
hierarchy and logging configuration used by the client components.
"""
