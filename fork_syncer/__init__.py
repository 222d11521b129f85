"""
Fork Syncer - Keep a customized fork in step with its upstream.

This package mirrors an upstream remote's main branch into a local fork
branch, integrates that fork branch into a customized main branch by
rebase or merge, and optionally pushes the result to the origin remote.
"""

__version__ = "1.0.0"
