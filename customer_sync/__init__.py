"""
Customer sync service

Keeps customer accounts (core2 `users`) and customer profiles (core1
`customers`) consistent across two databases that cannot share a
transaction.
"""

__version__ = "1.0.0"
