"""
SensiLog Core - Foundation modules.

This module contains:
- config: Application configuration management
- errors: Error taxonomy rendered by the API layer
- utils: Time and arithmetic helpers
"""

__all__: list[str] = []
