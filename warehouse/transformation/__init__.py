"""
Transformation Module
"""
from .clean import CleanTransformer
from .definitions import DatasetDefinition, load_dataset_definition
from .marts import DateDimension, MartBuilder, MartContext, MartModel
from .transformers import TransformLayer, TransformResult

__all__ = [
    "CleanTransformer",
    "DatasetDefinition",
    "load_dataset_definition",
    "DateDimension",
    "MartBuilder",
    "MartContext",
    "MartModel",
    "TransformLayer",
    "TransformResult",
]
