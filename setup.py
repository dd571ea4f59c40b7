from setuptools import find_packages, setup

setup(
    name="bifcont",
    version="0.1.0",
    description="Pseudo-arclength continuation with minimally augmented bifurcation tracking",
    license="MIT",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.10",
    install_requires=["numpy", "scipy>=1.12", "numdifftools"],
    extras_require={"dev": ["pytest", "mypy", "ruff"]},
)
