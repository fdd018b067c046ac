"""
CPM: snapshot and restore Claude CLI configuration profiles.
"""
__version__ = "1.0.0"
