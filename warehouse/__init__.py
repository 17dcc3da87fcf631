"""
Layered Warehouse Pipeline

source -> raw -> clean -> mart for the Chinook and OULAD datasets.
"""

__version__ = "1.0.0"
