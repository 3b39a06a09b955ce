import re
from pathlib import Path
from typing import Dict, List

from setuptools import find_packages, setup


ROOT_PATH = Path(__file__).parent.absolute() / "datapull"


init_text = (ROOT_PATH / "__init__.py").read_text("utf-8")
try:
    version = re.findall(r'^__version__ = ["\']([^"\']+)["\']\r?$', init_text, re.M)[0]
except IndexError:
    raise RuntimeError("Unable to determine version.")

install_requires = (
    "aiohttp>=3.8.0",
    "boto3>=1.16.24",
    "humanize>=3.11.0",
    "rich>=12.0.0",
    "wrapt>=1.13.3",
    "yarl>=1.6.3",
)

extras_require: Dict[str, List[str]] = {
    "test": [
        "pytest>=7.0.0",
        "pytest-asyncio>=0.21.0",
    ],
}

setup(
    name="datapull",
    version=version,
    description="Locate and download partitioned datasets from S3",
    license="Apache 2",
    packages=find_packages(include=["datapull", "datapull.*"]),
    python_requires=">=3.8",
    install_requires=install_requires,
    extras_require=extras_require,
    entry_points={"console_scripts": ["datapull=datapull.main:main"]},
    include_package_data=True,
)
