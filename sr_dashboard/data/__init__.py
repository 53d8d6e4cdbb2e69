"""
Demo Data Generation Module
"""
from .generators import DatasetSize, DemoDataGenerator, DemoDataset

__all__ = [
    "DatasetSize",
    "DemoDataGenerator",
    "DemoDataset",
]
