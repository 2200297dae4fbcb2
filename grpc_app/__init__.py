"""gRPC transport layer for the mock server.

This package hosts:
- Server bootstrap (health, reflection) and interceptors.
- The generic-handler servicer that serves every method of the loaded schemas.
"""
