"""Post coordination services.

Submodules are imported directly (``post_uploader.services.post_coordinator``)
so the platform contracts can depend on the models without an import cycle.
"""
