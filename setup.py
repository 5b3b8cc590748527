from setuptools import setup


setup(
    name="recipekit",
    version="0.1.0",
    description="Fetch, verify, patch, build and install packages from "
    "declarative source recipes",
    author="MagicStack Inc.",
    author_email="hello@magic.io",
    packages=[
        "recipekit",
        "recipekit.build",
        "recipekit.packages",
        "recipekit.tools",
    ],
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "requests~=2.31",
        "cleo~=2.1",
        "poetry-core>=1.9",
        "packaging>=23.0",
        "tomli>=1.2",
    ],
    extras_require={
        "test": [
            "pytest",
            "types-requests~=2.31.0.2",
        ]
    },
)
