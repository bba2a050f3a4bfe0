"""Setup script for SubsetFlow."""

from setuptools import find_packages, setup

setup(
    name="subsetflow",
    version="0.1.0",
    description="Consistent subset imports between Oracle databases",
    author="SubsetFlow Team",
    packages=find_packages(include=["subsetflow", "subsetflow.*"]),
    install_requires=[
        "sqlalchemy>=2.0.0",  # Target session and statement execution
        "oracledb>=2.0.0",  # Oracle driver, also used for DBMS_DATAPUMP calls
        "networkx>=3.0",  # Filter dependency graph handling
        "typer>=0.9.0",  # Modern CLI framework
        "rich>=13.0.0",  # CLI output
        "pyyaml>=6.0",  # Configuration handling
    ],
    package_data={
        "subsetflow": ["py.typed"],
    },
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.1.0",
            "black>=22.1.0",
            "isort>=5.10.1",
            "flake8>=4.0.1",
            "mypy>=1.0.0",  # Type checking
        ],
        "test": [
            "pytest>=7.0.0",
            "pytest-cov>=4.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "subsetflow=subsetflow.cli.main:cli",
        ],
    },
    python_requires=">=3.8",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Intended Audience :: System Administrators",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Database",
    ],
)
