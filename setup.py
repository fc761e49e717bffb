from setuptools import setup, find_packages


setup(
    name="charmpack",
    version="0.1",
    packages=find_packages(include=["charmpack", "charmpack.*"]),
    description="Reader, writer and secure extractor for versioned package archives.",
    python_requires=">=3.8",
    install_requires=[
        "PyYAML>=6.0",
    ],
    entry_points={
        "console_scripts": [
            "charmpack=charmpack.cli:main",
        ]
    },
)
