"""
Setup configuration for the Aether automaton package.
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="aether-automaton",
    version="0.1.0",
    author="Aether Team",
    description="Aether cellular automaton simulator with symmetry folding and out-of-core grids",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Scientific/Engineering :: Mathematics",
    ],
    python_requires=">=3.8",
    install_requires=[
        "numpy>=1.20.0",
        "scipy>=1.7.0",
        "numba>=0.55.0",
    ],
    extras_require={
        "full": [
            "h5py>=3.0.0",
        ],
        "dev": [
            "pytest>=6.0.0",
            "pytest-cov>=2.0.0",
            "h5py>=3.0.0",
        ],
        "test": [
            "pytest>=6.0.0",
            "h5py>=3.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "aether-sim=aether.main:main",
        ],
    },
)
