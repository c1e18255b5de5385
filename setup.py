from setuptools import setup

with open("README.md", "r", encoding="utf-8") as fp:
    long_description = fp.read()

setup(
    name="crystalmc",
    version="1.0.0",
    description="CrystalMC provisions and launches the CrystalClient game: version manifest, "
                "assets, libraries, natives and Java runtime.",
    author="CrystalMC contributors",
    packages=["crystalmc", "crystalmc.cli"],
    python_requires=">=3.8",
    install_requires=["certifi"],
    extras_require={"test": ["pytest"]},
    entry_points={"console_scripts": ["crystalmc = crystalmc.cli:main"]},
    url="https://github.com/crystaldev/crystalmc",
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="GPL-3.0",
)
