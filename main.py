#!/usr/bin/env python3
"""
Main entry point for the ircore console client
"""

from ircore.main import run

if __name__ == "__main__":
    run()
