"""
Deferred Reveal Asset Protocol - Command Line Interface
"""

__version__ = "0.3.0"
