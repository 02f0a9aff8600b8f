"""Setup script for the aiojanitor package."""

from setuptools import setup, find_packages

requires = ["anyio>=3.1.0", "outcome>=1.0.1"]

extras = {"test": ["pytest>=6.0"]}

__version__ = None
exec(open("src/aiojanitor/version.py").read())

setup(
    name="aiojanitor",
    version=__version__,
    description="Deterministic resource lifetime management for asyncio and trio",
    package_dir={"": "src"},
    packages=find_packages("src", exclude=["test"]),
    include_package_data=True,
    python_requires=">=3.8",
    install_requires=requires,
    extras_require=extras,
)
