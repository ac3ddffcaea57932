"""
SensiLog Integrations - External service clients.

This module contains:
- riot: Riot account and Valorant match API client, mock client and match transform
"""

__all__: list[str] = []
