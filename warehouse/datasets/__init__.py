"""
Dataset Registry

A dataset is a YAML definition (source, clean models, declared tests) plus
a Python module holding its ordered mart models.
"""

import importlib
from dataclasses import dataclass
from pathlib import Path
from typing import List

from warehouse.transformation.definitions import DatasetDefinition, load_dataset_definition
from warehouse.transformation.marts import Model

DATASETS_DIR = Path(__file__).parent

_REGISTRY = {
    "chinook": "warehouse.datasets.chinook",
    "oulad": "warehouse.datasets.oulad",
}


@dataclass
class Dataset:
    """Everything the pipeline needs to build one dataset"""
    name: str
    definition: DatasetDefinition
    mart_models: List[Model]

    def __post_init__(self):
        built = {model.name for model in self.mart_models}
        unknown = [tests.name for tests in self.definition.marts if tests.name not in built]
        if unknown:
            raise ValueError(f"Mart tests declared for tables no model builds: {unknown}")


def available_datasets() -> List[str]:
    return sorted(_REGISTRY)


def load_dataset(name: str) -> Dataset:
    """
    Load a registered dataset.

    Raises:
        KeyError: Unknown dataset name
    """
    if name not in _REGISTRY:
        raise KeyError(f"Unknown dataset '{name}'. Available: {available_datasets()}")

    module = importlib.import_module(_REGISTRY[name])
    definition = load_dataset_definition(DATASETS_DIR / f"{name}.yml")
    return Dataset(name=name, definition=definition, mart_models=list(module.MART_MODELS))
