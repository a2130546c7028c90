"""
Entry point for running Vocab as a module.

Usage:
    python -m src.review study
    python -m src.review stats
    python -m src.review --help
"""
from .review_cli import main

if __name__ == "__main__":
    main()
