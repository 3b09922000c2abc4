"""Main CLI application using Cyclopts.

``run`` starts the exporter; ``check`` probes references once with ambient
credentials, without a cluster.
"""

import asyncio
import os
import sys
from pathlib import Path

import cyclopts

from kiae.cli.console import CheckRow, get_console
from kiae.config import Config, configure_logging
from kiae.domain.image.model.value import AvailabilityMode
from kiae.infrastructure.registry.client import RegistryClient
from kiae.infrastructure.registry.probe import ProbeResult, RegistryProbe
from kiae.infrastructure.registry.transport import build_registry_client

app = cyclopts.App(
    name="kiae",
    help="Kubernetes image availability exporter",
)


@app.command
def run(
    host: str | None = None,
    port: int | None = None,
    config_file: Path | None = None,
) -> None:
    """Start the exporter and serve /metrics.

    Args:
        host: Host to bind to. Overrides server.host.
        port: Port to listen on. Overrides server.port.
        config_file: YAML config file (same as KIAE_CONFIG_FILE).
    """
    import uvicorn

    from kiae.application.api.rest.app import create_app

    if config_file is not None:
        if not config_file.exists():
            get_console().error(f"Config file not found: {config_file}")
            sys.exit(1)
        os.environ["KIAE_CONFIG_FILE"] = str(config_file.resolve())

    config = Config()  # type: ignore[call-arg]
    uvicorn.run(
        create_app(config),
        host=host or config.server.host,
        port=port or config.server.port,
        log_config=None,
    )


async def _probe_all(config: Config, images: tuple[str, ...]) -> list[ProbeResult]:
    async with build_registry_client(config.registry) as http:
        probe = RegistryProbe(
            client=RegistryClient(client=http),
            default_registry=config.registry.default_registry,
            plain_http=config.registry.plain_http,
        )
        return list(await asyncio.gather(*(probe.probe(image) for image in images)))


@app.command
def check(
    *images: str,
    default_registry: str | None = None,
    plain_http: bool = False,
) -> None:
    """Check whether images are pullable, using ambient docker credentials.

    Exits non-zero unless every image is available.

    Args:
        images: Image references to check.
        default_registry: Registry host for references without one.
        plain_http: Talk plain HTTP to registries.
    """
    console = get_console()
    if not images:
        console.error("No images given", hint="Usage: kiae check IMAGE [IMAGE...]")
        sys.exit(2)

    config = Config()  # type: ignore[call-arg]
    configure_logging(config.logging)
    registry = config.registry.model_copy(
        update={
            "default_registry": default_registry or config.registry.default_registry,
            "plain_http": plain_http or config.registry.plain_http,
        }
    )
    config = config.model_copy(update={"registry": registry})

    results = asyncio.run(_probe_all(config, images))
    console.check_results(
        CheckRow(
            image=image,
            mode=result.mode,
            attempts=result.attempts,
            error="" if result.error is None else str(result.error),
        )
        for image, result in zip(images, results)
    )
    if all(result.mode is AvailabilityMode.AVAILABLE for result in results):
        console.success(f"{len(images)} image(s) available")
        return
    sys.exit(1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
