"""
Entry point for running ZooTrack as a module.

Usage:
    python -m zootrack [hours]
"""

from .cli import main

if __name__ == "__main__":
    main()
