"""
Inkwell setup.py — Package configuration and CLI entry point.
"""

from setuptools import find_packages, setup

setup(
    name="inkwell",
    version="1.0.0",
    description="Inkwell — document persistence & version-history engine",
    packages=find_packages(include=["inkwell", "inkwell.*"]),
    python_requires=">=3.11",
    entry_points={
        "console_scripts": [
            "inkwell=inkwell.cli:main",
        ],
    },
    install_requires=[
        "sqlalchemy>=2.0",
        "psycopg2-binary>=2.9",
        "pydantic>=2.5",
        "celery[redis]>=5.3",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
        ],
    },
)
