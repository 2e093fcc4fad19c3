"""
esmforge - static asset build pipeline producing browser-ready ES modules.
"""

__version__ = "0.1.0"
