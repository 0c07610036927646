"""
Collabzy data layer: cache-aside access to the Collabzy marketplace API.
"""
__version__ = "0.3.0"
