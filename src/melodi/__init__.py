"""
Melodi - Interactive console for browsing and querying BIM/ECDb database files.

Melodi opens SQLite-based repository files behind a single capability-aware
handle and provides:
- A multi-line query console with bounded, persisted history
- Column-balanced table output sized to the terminal
- Type-aware cell formatting (navigation references, JSON, blobs)
- A small menu per open file (query, schemas, info)

Example usage:
    $ melodi open model.bim --mode readonly
    $ melodi query model.bim "SELECT Name FROM ec_Schema;"
    $ melodi history model.bim
"""

__version__ = "0.1.0"
__author__ = "Melodi Contributors"

__all__ = [
    "__version__",
    "__author__",
]
