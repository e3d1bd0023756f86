"""
Login session client.

This package contains the client configuration, the HTTP transport for the
login server, the authentication components and the login state holder.
"""
