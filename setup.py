# setup.py
from setuptools import setup, find_packages

setup(
    name="speed_scout",
    version="0.1.0",
    description="Batch PageSpeed analysis with deduplicated, time-limited report sharing",
    packages=find_packages(exclude=("tests", "tests.*")),
    install_requires=[
        "aiohttp>=3.9",
        "click>=8.1",
        "pydantic>=2.5",
        "PyYAML>=6.0",
        "redis>=5.0.1",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "speed-scout=speed_scout.cli:main",
        ],
    },
    python_requires=">=3.11",
)
