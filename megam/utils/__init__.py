"""Geo helpers, location naming, caches and runtime settings"""
