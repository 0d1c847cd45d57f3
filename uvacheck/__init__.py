"""
uvacheck: unused local variable and lambda parameter detection for C#.
"""

__version__ = "0.1.0"
