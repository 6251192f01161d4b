"""Invoke tasks for testing, linting and running hubproxy.

Run tasks with: invoke TASK_NAME

Examples:
    invoke test              # Run all tests except e2e
    invoke test.unit         # Unit tests only
    invoke test.coverage     # Terminal + HTML coverage report
    invoke lint.black        # Format code with black
    invoke run.serve         # JSON-RPC server on :8100
    invoke run.diagnose      # Upstream health check
"""

from invoke import Collection, task


@task(help={"verbose": "Show verbose output"})
def test(ctx, verbose=False):
    """Run all tests (e2e tests are deselected by default)."""
    cmd = "uv run pytest"
    if verbose:
        cmd += " -v"
    ctx.run(cmd)


@task
def unit(ctx):
    """Run unit tests only."""
    ctx.run("uv run pytest -m unit")


@task
def integration(ctx):
    """Run integration tests against the fake Docker Hub."""
    ctx.run("uv run pytest -m integration")


@task
def api(ctx):
    """Run HTTP endpoint tests only."""
    ctx.run("uv run pytest -m api")


@task
def e2e(ctx):
    """Run tests against the real Docker Hub (needs network)."""
    ctx.run("uv run pytest -m e2e")


@task(help={"file": "Specific test file to run", "name": "Test name or pattern"})
def specific(ctx, file=None, name=None):
    """Run specific test file, class, or function.

    Examples:
        invoke test.specific --file tests/unit/test_smart_cache.py
        invoke test.specific --file tests/unit/test_smart_cache.py --name TestLRUEviction
    """
    if not file and not name:
        print("Error: Please specify --file and/or --name")
        return

    cmd = "uv run pytest"
    if file:
        cmd += f" {file}"
    if name:
        cmd += f"::{name}" if file else f" -k {name}"
    ctx.run(cmd)


@task
def coverage(ctx):
    """Generate terminal and HTML coverage reports."""
    ctx.run("uv run pytest --cov=hubproxy --cov-report=term-missing --cov-report=html")
    print("\n✓ Coverage report generated in htmlcov/index.html")


@task
def debug_logs(ctx):
    """Run tests with debug-level logging."""
    ctx.run("uv run pytest --log-cli-level=DEBUG")


@task(help={"src": "Path to check (default: hubproxy)"})
def flake8(ctx, src="hubproxy"):
    """Run flake8 style checker."""
    ctx.run(f"uv run flake8 --max-line-length 100 {src}")


@task(help={"check": "Check only, don't modify files"})
def black(ctx, check=False):
    """Format code with black."""
    cmd = "uv run black hubproxy tests main.py tasks.py"
    if check:
        cmd += " --check"
    ctx.run(cmd)


@task(help={"port": "Port to listen on", "preload": "Warm the cache on startup"})
def serve(ctx, port=8100, preload=False):
    """Serve the tools as JSON-RPC over HTTP."""
    cmd = f"uv run python main.py serve --port {port}"
    if preload:
        cmd += " --preload"
    ctx.run(cmd, pty=True)


@task
def diagnose(ctx):
    """Check Docker Hub reachability and configuration."""
    ctx.run("uv run python -m hubproxy.cli_diagnose health")


test_ns = Collection("test")
test_ns.add_task(test, default=True)
test_ns.add_task(unit)
test_ns.add_task(integration)
test_ns.add_task(api)
test_ns.add_task(e2e)
test_ns.add_task(specific)
test_ns.add_task(coverage)
test_ns.add_task(debug_logs)

lint_ns = Collection("lint")
lint_ns.add_task(flake8)
lint_ns.add_task(black)

run_ns = Collection("run")
run_ns.add_task(serve)
run_ns.add_task(diagnose)

ns = Collection(test_ns, lint_ns, run_ns)
