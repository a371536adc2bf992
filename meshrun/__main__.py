#!/usr/bin/env python3
"""
meshrun - main entry point for module execution.
"""

from meshrun.cli import cli

if __name__ == '__main__':
    cli()
