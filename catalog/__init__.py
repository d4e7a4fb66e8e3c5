"""
Book catalog core.

This package contains:
- Book record and cover image models
- Declarative field validation shared by the API and the store
- MongoDB book store with search and statistics
- Disk-backed cover image store
- Error taxonomy
"""

__version__ = "1.0.0"
