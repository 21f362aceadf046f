#!/usr/bin/env python3
"""
Screenflow
Capture web app screens with their actions and API traffic, then replay
them as regression tests against the live application
"""

from screenflow.cli import run

if __name__ == "__main__":
    run()
