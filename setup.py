from setuptools import setup, find_packages

setup(
    name="ftsBridge",
    version="0.1.0",
    description="External full-text search operator for SPARQL (fts: magic predicates over Solr)",
    packages=find_packages(include=["ftsBridge", "ftsBridge.*"]),
    python_requires=">=3.10",
    install_requires=[
        "click>=8.0",
        "requests>=2.31.0",
        "urllib3>=1.26",
        "rdflib>=7.0,<8",
        "pyparsing>=3.0",
        "PyYAML>=6.0",
        "tabulate>=0.8.9",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "requests-mock>=1.11",
            "pytest-socket>=0.6",
        ],
    },
    entry_points={
        "console_scripts": ["ftsbridge=ftsBridge.cli.__main__:main"],
    },
    license="MIT",
)
