from setuptools import setup, find_packages

setup(
    name="openintel",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "requests",
        "pyyaml",
        # Vector index: sqlite-vec extension, numpy for the flat fallback
        "sqlite-vec>=0.1.6",
        "numpy",
        "tqdm>=4.60",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "openintel=openintel.cli:main",
        ],
    },
    description="Structured intelligence knowledge base with keyword, semantic "
                "and hybrid search over SQLite.",
)
