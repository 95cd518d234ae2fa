from setuptools import find_packages, setup

setup(
    name="ephemurl",
    version="0.1.0",
    packages=find_packages(include=["ephemurl", "ephemurl.*"]),
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "fastapi",
        "uvicorn",
        "pydantic>=2",
        "cryptography",
        "requests",
        "click",
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx",
        ],
    },
    entry_points={
        "console_scripts": [
            "ephemurl=ephemurl.cli:cli",
        ],
    },
)
