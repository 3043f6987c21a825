from setuptools import setup, find_packages

setup(
    name="bosun",
    version="0.1.0",
    description="One command line for pulling, caching and running images on Docker or Singularity",
    author="",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.8",
    install_requires=[
        "pyyaml>=6.0.1",
        "click>=8.1.7",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "bosun=bosun.cli:main",
        ],
    },
    include_package_data=True,
)
