"""Setup script for the Happenings Lite recurrence and occurrence engine."""

from pathlib import Path

from setuptools import find_namespace_packages, setup

# Read the README file
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

# Read requirements, routing test tooling into the dev extra
requirements_file = Path(__file__).parent / "requirements.txt"
requirements = []
dev_requirements = []

if requirements_file.exists():
    content = requirements_file.read_text().strip()
    lines = content.split("\n")

    for line in lines:
        line = line.strip()
        # Skip empty lines and comments
        if not line or line.startswith("#"):
            continue

        # Separate development dependencies
        if "pytest" in line or "development" in line.lower() or "testing" in line.lower():
            dev_requirements.append(line)
        else:
            requirements.append(line)

setup(
    name="happenings-lite",
    version="0.1.0",
    description="Recurrence interpretation and occurrence expansion for community event listings",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Happenings Team",
    # Subpackages carry no __init__.py, so namespace discovery is required
    packages=find_namespace_packages(include=["happenings_lite", "happenings_lite.*"]),
    include_package_data=True,
    install_requires=requirements,
    extras_require={
        "dev": dev_requirements,
    },
    python_requires=">=3.11",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Office/Business :: Scheduling",
    ],
    keywords="calendar recurrence rrule occurrences events scheduling",
    entry_points={
        "console_scripts": [
            "happenings-lite=happenings_lite.__main__:main",
        ],
    },
    zip_safe=False,
)
