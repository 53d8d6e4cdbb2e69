#!/usr/bin/env python
"""
SR Performance Dashboard Setup
"""

import re
from pathlib import Path

from setuptools import setup, find_packages

HERE = Path(__file__).parent

# Single source for the version: sr_dashboard/__init__.py
version = re.search(r'__version__ = "([^"]+)"', (HERE / "sr_dashboard" / "__init__.py").read_text(encoding="utf-8")).group(1)

long_description = (HERE / "README.md").read_text(encoding="utf-8")
requirements = [
    line.strip()
    for line in (HERE / "requirements.txt").read_text(encoding="utf-8").splitlines()
    if line.strip() and not line.startswith("#")
]

setup(
    name="sr-dashboard",
    version=version,
    description="Referrer (SR) performance analytics: date-window aggregation and metric derivation API",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*", "scripts"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Framework :: FastAPI",
        "Topic :: Database",
        "Topic :: Scientific/Engineering :: Information Analysis",
    ],
    python_requires=">=3.11",
    install_requires=requirements,
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
            "pytest-asyncio>=0.23.0",
            "httpx>=0.25.0",
            "aiosqlite>=0.19.0",
            "ruff>=0.1.0",
            "mypy>=1.5.0",
        ],
        "mysql": [
            "aiomysql>=0.2.0",
        ],
    },
    include_package_data=True,
    zip_safe=False,
    keywords=[
        "analytics",
        "dashboard",
        "fastapi",
        "sqlalchemy",
        "postgresql",
        "redis",
    ],
)
