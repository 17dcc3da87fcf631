#!/usr/bin/env python
"""
Layered Warehouse Pipeline Setup
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="layered-warehouse",
    version="1.0.0",
    description="RAW -> CLEAN -> MART warehouse pipeline for the Chinook and OULAD datasets",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*", "workflows", "workflows.*"]),
    package_data={"warehouse.datasets": ["*.yml"]},
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Database",
        "Topic :: Scientific/Engineering :: Information Analysis",
    ],
    python_requires=">=3.11",
    install_requires=requirements,
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
            "clickhouse-sqlalchemy>=0.3.0",
        ],
        "clickhouse": [
            "clickhouse-sqlalchemy>=0.3.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "warehouse=warehouse.cli:main",
        ],
    },
    include_package_data=True,
    zip_safe=False,
    keywords=[
        "data-warehouse",
        "etl",
        "star-schema",
        "data-pipeline",
        "sqlalchemy",
        "polars",
        "clickhouse",
    ],
)
