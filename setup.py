from pathlib import Path

from setuptools import find_namespace_packages, setup

root = Path(__file__).parent
readme = root / "README.md"

setup(
    name="gtkwire",
    version="0.1.0",
    description="Compile reactive .wire components into GTK 4 widget code",
    long_description=readme.read_text("utf-8") if readme.exists() else "",
    long_description_content_type="text/markdown",
    license="MIT",
    python_requires=">=3.11",
    package_dir={"": "src"},
    packages=find_namespace_packages(where="src", include=["gtkwire", "gtkwire.*"]),
    install_requires=[
        "rich>=13.0",
        "rich-click>=1.7",
        "watchfiles>=0.21",
    ],
    extras_require={
        "gtk": ["PyGObject>=3.46"],
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "gtkwire=gtkwire.cli.main:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Compilers",
        "Topic :: Software Development :: User Interfaces",
    ],
    zip_safe=False,
)
