"""
SensiLog Authentication - Riot sign-on and JWT sessions.

This module contains:
- jwt: Token issuing and verification
- riot_oauth: Riot Sign-On authorization code flow
- mock: Development users and deterministic mock matches
- middleware: FastAPI dependency resolving the current user
"""

__all__: list[str] = []
