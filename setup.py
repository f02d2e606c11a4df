from setuptools import setup


setup(
    name="sales-doctor",
    version="0.1.0",
    description="Local data-quality checks and tiered corrections for sales, offer and demographic CSV data",
    packages=["sales_doctor"],
    python_requires=">=3.10",
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "rapidfuzz",
    ],
    extras_require={
        "excel-legacy": ["xlrd"],
        "ods": ["odfpy"],
        "all": ["xlrd", "odfpy"],
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "sales-doctor=sales_doctor.cli:main",
        ]
    },
)
