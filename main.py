#!/usr/bin/env python3
"""
Workflow Engine - Main entry point.

This is a thin wrapper around the CLI.

Usage:
    python main.py --help
    python main.py run ./workflow.json --handlers responses.json
    python main.py run ./workflow.json -m upto -n n2 -o run.json
    python main.py validate ./workflow.json
"""

from workflow_engine.cli import main

if __name__ == "__main__":
    main()
