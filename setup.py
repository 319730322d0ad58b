import os
from setuptools import setup, find_packages

# Read the version from the package
with open(os.path.join("src", "serial_talker", "__init__.py"), "r") as f:
    for line in f:
        if line.startswith("__version__"):
            exec(line)
            break

# Read long description from README
with open("README.md", "r", encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="serial_talker",
    version=__version__,
    description="Serial port session manager and line terminal with baud rate negotiation",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "typeguard>=4.0.0",
        "pyserial>=3.5",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    python_requires=">=3.8",
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Operating System :: Microsoft :: Windows",
        "Operating System :: POSIX :: Linux",
        "Intended Audience :: Developers",
        "Topic :: Communications",
        "Topic :: System :: Hardware",
        "Topic :: Terminals :: Serial",
    ],
    entry_points={
        "console_scripts": [
            "serial-talker=serial_talker.cli:main",
        ],
    },
)
