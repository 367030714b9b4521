"""
APIs Package
============
- air_quality_service: in-process facade and default wiring
- air_quality_api: Flask endpoints (run with `megam-api`)
"""
