# setup.py
from setuptools import setup, find_packages

setup(
    name="justdad",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.10",
    install_requires=[
        "python-dateutil",
        "PySide6<6.12",
        "matplotlib",
        "reportlab",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "justdad=justdad.main:run_wizard",
        ],
    },
)
