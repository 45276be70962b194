from setuptools import setup, find_packages


setup(
    name="strata",
    version="0.1",
    packages=find_packages(include=["strata", "strata.*"]),
    description="Content-addressed object store and staging index in the git on-disk format.",
    python_requires=">=3.8",
    install_requires=[
        "pycryptodomex>=3.23.0",
    ],
    entry_points={
        "console_scripts": [
            "strata=strata.cli:main",
        ]
    },
)
