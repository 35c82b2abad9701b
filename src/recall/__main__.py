"""
Entry point for running Recall as a module.

Usage:
    python -m src.recall queue
    python -m src.recall stats
    python -m src.recall --help
"""
from .cli import main

if __name__ == "__main__":
    main()
