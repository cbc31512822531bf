"""
Policy resolution, key derivation, read-through and invalidation engines.
"""
