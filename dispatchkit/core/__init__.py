"""
Core dispatch package.

Request contexts, the stage pipeline, wrappers and route binding.
"""
