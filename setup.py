from setuptools import setup, find_packages

setup(
    name="pyPaymentsTest",
    version="1.0.0",
    packages=find_packages(include=["src"]),
    install_requires=[
        "requests>=2.28",
        "PyYAML>=6.0",
        "jsonpath-ng>=1.5.3",
        "Jinja2>=3.0",
        "structlog>=23.1",
        "python-dotenv>=1.0",
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "pyPaymentsTest=src.api_tester:main_cli",
        ],
    },
)
