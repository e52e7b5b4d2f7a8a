"""
Rate limiting package for the Lookup Service.

Holds the Redis sliding-window budget that keeps every process sharing an
API key under the upstream's call limits.
"""
