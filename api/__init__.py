"""
FastAPI REST API for the personal book catalog.

This module provides:
- Book record listing, search, CRUD and statistics
- Cover image upload, lookup, serving and deletion
- A uniform success/error response envelope
"""
