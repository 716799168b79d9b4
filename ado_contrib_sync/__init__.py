"""
ADO Contrib Sync - Replay Azure DevOps commit history into a local repo.

This package fetches the commits a user authored across every project and
repository of an Azure DevOps organization and recreates them, with their
original dates, as synthetic commits in a local git repository so the
activity shows up on a contribution graph.
"""

__version__ = "1.0.0"
