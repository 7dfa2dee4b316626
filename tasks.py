# type: ignore
import os

from invoke import task


@task
def venv(ctx):
    """Create .venv with uv and install lanwatch with test and dev extras."""
    ctx.run("uv venv")
    ctx.run("uv pip install -e '.[test,dev]'")


@task
def lint(ctx):
    """
    Run ruff and mypy over the package sources.
    """
    ctx.run("ruff check src tests", pty=True)
    ctx.run("ruff format --check src tests", pty=True)
    ctx.run("mypy src", pty=True)


@task
def test(ctx):
    """
    Run tests with coverage information.
    """
    ctx.run("pytest --cov=lanwatch --cov-report=term-missing", pty=True)


@task
def serve(ctx, port=None):
    """Run a local lanwatch server with debug logging."""
    port_arg = f" --port {port}" if port else ""
    ctx.run(f"lanwatch --verbose serve{port_arg}", pty=True)


@task
def build_package(ctx):
    """
    Build sdist and wheel into dist/.
    """
    ctx.run("rm -rf dist")
    ctx.run("uv build")


@task
def release(ctx):
    """Build and publish to PyPI using uv."""
    token = os.getenv("PYPI_TOKEN")
    if not token:
        raise ValueError("PYPI_TOKEN environment variable is not set")

    ctx.run("invoke build-package")
    ctx.run(f"uv publish --token {token}")
