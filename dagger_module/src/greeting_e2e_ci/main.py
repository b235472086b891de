"""Dagger pipeline for the greeting e2e runner.

This module runs the runner's tests and the e2e scenario itself inside
containers, binding either the fake pipeline or a real deployment.
"""

import asyncio

import dagger as dg
from dagger import dag, function, object_type

FAKE_PIPELINE_PORT = 8080


@object_type
class GreetingE2eCi:
    """Containerized checks for the greeting e2e runner, built with uv.

    This module provides:
    - Unit tests in isolated containers, optionally across Python versions
    - The fake greeting pipeline as a Dagger service
    - The e2e scenario run against a bound pipeline service
    """

    # Base container creation
    @function
    def test_container(
        self, source: dg.Directory, python_version: str = "3.12"
    ) -> dg.Container:
        """Create a base container with uv and the runner installed.

        Args:
            source: Directory containing the project
            python_version: Python version to use (default: 3.12)

        Returns:
            Container with the project and its test extras installed
        """
        uv_cache = dag.cache_volume("uv")

        return (
            dag.container()
            .from_(f"ghcr.io/astral-sh/uv:python{python_version}-bookworm-slim")
            .with_mounted_cache("/root/.cache/uv", uv_cache)
            .with_directory("/app", source)
            .with_workdir("/app")
            .with_env_variable("UV_SYSTEM_PYTHON", "1")
            .with_exec(["uv", "pip", "install", "-e", ".[test]"])
        )

    # Unit testing functions
    @function
    async def unit_test(
        self, source: dg.Directory, python_version: str = "3.12"
    ) -> str:
        """Run unit tests with pytest.

        Args:
            source: Directory containing the project
            python_version: Python version to use

        Returns:
            Test output from pytest
        """
        return await (
            self.test_container(source, python_version)
            .with_exec(["pytest", "tests/unit", "-v", "--tb=short"])
            .stdout()
        )

    @function
    async def unit_test_matrix(
        self, source: dg.Directory, versions: str = "3.11,3.12,3.13"
    ) -> str:
        """Run unit tests concurrently on multiple Python versions.

        Args:
            source: Directory containing the project
            versions: Comma-separated list of Python versions

        Returns:
            Formatted test results for all versions
        """
        version_list = [v.strip() for v in versions.split(",")]

        async def test_version(version: str) -> tuple[str, str]:
            """Test a specific Python version."""
            try:
                result = await self.unit_test(source, version)
                return version, f"Python {version}: PASSED\n{result}"
            except dg.ExecError as e:
                return version, f"Python {version}: FAILED\n{e.stdout}\n{e.stderr}"

        results = await asyncio.gather(*[test_version(v) for v in version_list])

        output_lines = ["=== MULTI-VERSION TEST RESULTS ===", ""]
        for _, result in results:
            output_lines.extend([result, "=" * 50, ""])

        return "\n".join(output_lines)

    # Service-related functions
    @function
    def fake_pipeline(
        self,
        source: dg.Directory,
        processing_delay_seconds: str = "1",
        python_version: str = "3.12",
    ) -> dg.Service:
        """Start the fake greeting pipeline as a service.

        The service serves both the receiver (POST /greeting) and the API
        (GET /log, GET /log/last) on port 8080, so it can stand in for both
        when bound to a runner container.

        Args:
            source: Directory containing the project
            processing_delay_seconds: Delay before a greeting shows up in the log
            python_version: Python version to use

        Returns:
            A Dagger service running the fake pipeline
        """
        return (
            self.test_container(source, python_version)
            .with_env_variable("FAKE_PIPELINE_PROCESSING_DELAY_SECONDS", processing_delay_seconds)
            .with_env_variable("PORT", str(FAKE_PIPELINE_PORT))
            .with_exposed_port(FAKE_PIPELINE_PORT)
            .as_service(args=["python", "-m", "greeting_e2e.fake_pipeline"])
        )

    @function
    async def run_scenario(
        self,
        source: dg.Directory,
        receiver: dg.Service | None = None,
        api: dg.Service | None = None,
        iterations: int = 1,
        poll_timeout: str = "30",
        python_version: str = "3.12",
    ) -> str:
        """Run the e2e scenario against bound receiver and API services.

        Without explicit services the fake pipeline is started and bound as
        both. A failing scenario exits non-zero, which fails the Dagger call.

        Args:
            source: Directory containing the project
            receiver: Greeting receiver service listening on port 8080
            api: Greeting API service listening on port 8080
            iterations: Number of greetings to send
            poll_timeout: Seconds to wait for the API to confirm processing
            python_version: Python version to use

        Returns:
            Runner output
        """
        if receiver is None or api is None:
            fake = self.fake_pipeline(source, python_version=python_version)
            receiver = receiver or fake
            api = api or fake

        return await (
            self.test_container(source, python_version)
            .with_service_binding("receiver", receiver)
            .with_service_binding("api", api)
            .with_env_variable("GREETING_E2E_RECEIVER_URL", f"http://receiver:{FAKE_PIPELINE_PORT}")
            .with_env_variable("GREETING_E2E_API_URL", f"http://api:{FAKE_PIPELINE_PORT}")
            .with_exec(
                [
                    "python",
                    "-m",
                    "greeting_e2e",
                    "--no-progress",
                    "--iterations",
                    str(iterations),
                    "--poll-timeout",
                    poll_timeout,
                ]
            )
            .stderr()
        )

    @function
    async def integration_test(
        self, source: dg.Directory, python_version: str = "3.12"
    ) -> str:
        """Run the e2e pytest suite against the fake pipeline service.

        Args:
            source: Directory containing the project
            python_version: Python version to use

        Returns:
            Integration test results from pytest
        """
        pipeline = self.fake_pipeline(source, python_version=python_version)

        return await (
            self.test_container(source, python_version)
            .with_service_binding("pipeline", pipeline)
            .with_env_variable("GREETING_E2E_RECEIVER_URL", f"http://pipeline:{FAKE_PIPELINE_PORT}")
            .with_env_variable("GREETING_E2E_API_URL", f"http://pipeline:{FAKE_PIPELINE_PORT}")
            .with_exec(["pytest", "tests/e2e", "-v", "--tb=short"])
            .stdout()
        )
