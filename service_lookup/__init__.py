"""
Lookup service for RiftRadar.
"""
