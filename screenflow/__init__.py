"""
screenflow - capture, replay and regression-test web application screens
"""

__version__ = "0.4.0"
