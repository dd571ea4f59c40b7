"""Nox configuration file for automation."""

import nox

# Global options
nox.options.sessions = ["lint", "type_check", "test"]
nox.options.reuse_existing_virtualenvs = True


@nox.session(python=["3.11", "3.12", "3.13"])
def test(session):
    """Run unit and integration tests with pytest."""
    session.install("-e", ".[dev]")
    session.run("pytest", "tests", *session.posargs)


@nox.session
def lint(session):
    """Lint with ruff."""
    session.install("ruff")
    session.run("ruff", "check", "src", "tests", "demos")


@nox.session
def format(session):
    """Format with ruff."""
    session.install("ruff")
    session.run("ruff", "format", "src", "tests", "demos")


@nox.session
def type_check(session):
    """Type check with mypy."""
    session.install("-e", ".[dev]")
    session.run("mypy", "src/bifcont")


@nox.session
def demos(session):
    """Run the demo scripts as smoke tests."""
    session.install("-e", ".")
    session.run("python", "demos/fold/fold_curve.py")
    session.run("python", "demos/pitchfork/pitchfork.py")
