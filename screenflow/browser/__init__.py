"""
Browser control
"""

from .driver import BrowserDriver

__all__ = [
    'BrowserDriver'
]
