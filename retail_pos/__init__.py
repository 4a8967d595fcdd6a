"""
Point-of-sale back office: checkout pipeline, inventory batches,
discounts and member loyalty points on SQLite.
"""

__version__ = "0.1.0"
