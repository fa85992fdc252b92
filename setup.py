from setuptools import setup, find_packages


def _read_requirements(path):
    requirements = []
    with open(path, "r") as fp:
        for line in fp:
            line = line.strip()
            if line and not line.startswith("#"):
                requirements.append(line)
    return requirements


setup(
    name="sysline",
    version="1.0.0",
    packages=find_packages(exclude=["tests*"]),
    entry_points={"console_scripts": ["sysline = sysline.cli:cli"]},
    install_requires=_read_requirements("requirements/main.in"),
    extras_require={"tests": _read_requirements("requirements/tests.in")},
    python_requires=">=3.8",
)
