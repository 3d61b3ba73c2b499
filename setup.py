from setuptools import setup, find_packages

setup(
    name="vol-term-structure",
    version="0.1.0",
    description="Implied volatility term structure fitting with analytic and Monte Carlo option pricing",
    author="Leo",
    author_email="tabbakhianhatef@gmail.com",
    url="https://github.com/Leotaby/vol-term-structure",
    packages=find_packages(exclude=["tests"]),
    py_modules=["main"],
    python_requires=">=3.10",
    install_requires=[
        "numpy>=1.25",
        "pandas>=2.0",
        "scipy>=1.11",
        "matplotlib>=3.7",
        "plotly>=5.15",
    ],
    extras_require={
        "live": ["yfinance>=0.2.30", "requests>=2.31"],
        "dev": ["pytest>=7.0", "requests>=2.31", "black", "flake8"],
    },
    entry_points={
        "console_scripts": [
            "vol-term=main:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Topic :: Office/Business :: Financial",
        "Topic :: Scientific/Engineering",
    ],
)
