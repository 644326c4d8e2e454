"""
DRAP CLI Commands Package

Command modules for the Deferred Reveal Asset Protocol CLI.
"""

__all__ = ['collection', 'mint', 'reveal', 'provenance', 'config']
