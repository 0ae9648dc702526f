"""
Pairing Bots - two language-model workers pair-programming as driver and navigator.
"""

__version__ = "0.1.0"
