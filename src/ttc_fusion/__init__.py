"""
Camera/LiDAR time-to-collision estimation.
"""

__version__ = '0.1.0'
