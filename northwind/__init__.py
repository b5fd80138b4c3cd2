"""
Northwind Slim Trackable Entities

Sample backend exchanging change-tracked entity graphs over a web API.
"""

__version__ = "1.0.0"
