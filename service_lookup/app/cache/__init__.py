"""
Cache package for Lookup Service.

Provides the Redis volatile tier: tagged JSON envelopes with a per-key
expiry. It is the fastest path and a best-effort copy; losing it only
costs latency.
"""
