from setuptools import setup, find_packages


setup(
    name="filestream",
    version="0.1",
    packages=find_packages(include=["filestream", "filestream.*"]),
    description="Stream bundles of files over a single chunked, optionally compressed byte stream.",
    python_requires=">=3.8",
    install_requires=[
        "zstandard>=0.18",
        "lz4>=3.1",
        "requests>=2.20",
    ],
    extras_require={
        "test": [
            "pytest>=6.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "filestream=filestream.cli:main",
        ]
    },
)
