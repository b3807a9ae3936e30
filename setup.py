"""
Setup script for the wamirror package.
"""
from setuptools import setup, find_packages

setup(
    name="wamirror",
    version="0.1.0",
    description="Local, full-text-searchable mirror of WhatsApp conversation history",
    author="wamirror contributors",
    author_email="user@example.com",
    url="https://github.com/username/wamirror",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "click>=8.0",
        "pandas>=1.0.0",
        "PyYAML>=5.4",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    python_requires=">=3.8",
    entry_points={
        "console_scripts": [
            "wamirror=wamirror.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
)
