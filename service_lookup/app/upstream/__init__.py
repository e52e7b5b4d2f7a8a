"""
Adapters package for the Riot Games API.

Contains the HTTP client and the realm routing tables. The client
encapsulates:

- Hosts, paths and the API key header
- Call budget and circuit breaker
- Error handling that maps to shared errors

Keep it thin and side-effect free outside of explicit calls.
"""

from .client import RiotApiClient

__all__ = ["RiotApiClient"]
