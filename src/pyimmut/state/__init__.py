"""State/store layer.

This package holds the store that owns the current snapshot, the subscriber
bus it notifies on every commit, and the namespace registry that grafts
state-plus-actions units into it.
"""
