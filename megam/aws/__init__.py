"""
AWS Package
===========
S3-backed JSON cache for historical datasets (CACHE_BACKEND=s3).
"""
