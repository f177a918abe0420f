"""
Revenue-cycle claims engine.
"""

__version__ = "1.0.0"
