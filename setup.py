from setuptools import setup, find_packages

setup(
    name="gr",
    version="1.0.0",
    description="Cached `go run`: runs Go programs without rebuilding unchanged sources",
    packages=find_packages(include=["gr", "gr.*"]),
    python_requires=">=3.9",
    install_requires=[],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "gr=gr:main",
            "gr-cleanup=gr.cleanup:main",
        ],
    },
)
