"""
LocalCosmos Command-Line Interface

Inspect configuration and run queries against document files using the
embedded store.

Author: LocalCosmos Team
Date: 2026-10-19
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import click
import yaml
from pydantic import ValidationError

from localcosmos import __version__
from localcosmos.core.config_manager import ConfigManager, LocalCosmosConfig
from localcosmos.core.logging_config import clear_activity_id, set_activity_id, setup_logging
from localcosmos.store.backend import StoreBackend
from localcosmos.store.documents import strip_system_properties
from localcosmos.store.exceptions import LocalCosmosError

logger = logging.getLogger("localcosmos.cli")


def _parse_scalar(raw: str) -> Any:
    """Read a command-line value as JSON, falling back to a plain string."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _parse_parameters(values: Tuple[str, ...]) -> Dict[str, Any]:
    parameters: Dict[str, Any] = {}
    for item in values:
        name, sep, raw = item.partition("=")
        if not sep or not name:
            raise click.BadParameter(f"expected NAME=VALUE, got {item!r}", param_hint="--param")
        parameters[name] = _parse_scalar(raw)
    return parameters


def _load_documents(path: Path) -> List[Dict[str, Any]]:
    with open(path, "r", encoding="utf-8") as f:
        try:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise click.ClickException(f"Cannot parse {path}: {e}")

    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise click.ClickException(f"{path} must contain a document or a list of documents")
    return data


@click.group()
@click.version_option(version=__version__, prog_name="localcosmos")
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file (YAML or JSON)",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Override the configured log level",
)
@click.pass_context
def cli(ctx, config_file: Optional[Path], log_level: Optional[str]):
    """
    LocalCosmos - embedded document store

    Load documents into an in-memory container and query them.
    """
    ctx.ensure_object(dict)

    overrides: Dict[str, Any] = {}
    if log_level:
        overrides["logging"] = {"level": log_level.upper()}

    try:
        config = ConfigManager().load(
            config_file=str(config_file) if config_file else None,
            cli_overrides=overrides
        )
    except (ValidationError, ValueError) as e:
        raise click.ClickException(f"Invalid configuration: {e}")

    setup_logging(
        level=config.logging.level,
        format_type=config.logging.format,
        log_file=config.logging.file,
        rotation_size=config.logging.rotation_size,
        rotation_count=config.logging.rotation_count,
        module_levels=config.logging.module_levels,
    )
    ctx.obj["config"] = config


@cli.command("config")
@click.pass_context
def show_config(ctx):
    """Print the effective configuration as JSON."""
    config: LocalCosmosConfig = ctx.obj["config"]
    click.echo(json.dumps(config.model_dump(mode="json"), indent=2))


@cli.command()
@click.argument("document_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--partition-key-path",
    "-k",
    required=True,
    help="Partition key path of the container, e.g. /myPartitionKey",
)
@click.option(
    "--partition",
    "-P",
    "partition_value",
    help="Partition key value to scope the query to (parsed as JSON when possible)",
)
@click.option(
    "--query",
    "-q",
    "query_text",
    default="SELECT * FROM c",
    show_default=True,
    help="Query text",
)
@click.option(
    "--param",
    "-p",
    "params",
    multiple=True,
    help="Query parameter as NAME=VALUE (VALUE parsed as JSON when possible)",
)
@click.option(
    "--cross-partition",
    is_flag=True,
    help="Allow the query to span every partition",
)
@click.option(
    "--system-properties/--no-system-properties",
    default=False,
    help="Include _etag, _rid and other system properties in the output",
)
@click.pass_context
def query(
    ctx,
    document_file: Path,
    partition_key_path: str,
    partition_value: Optional[str],
    query_text: str,
    params: Tuple[str, ...],
    cross_partition: bool,
    system_properties: bool,
):
    """
    Load DOCUMENT_FILE into a container and print matching documents.

    Results are written as one JSON document per line.

    Examples:
        localcosmos query items.json -k /myPartitionKey -P 2024-01-01
        localcosmos query items.yaml -k /pk -q "SELECT * FROM c WHERE c.name = @n" -p n="Alex Turner" --cross-partition
    """
    config: LocalCosmosConfig = ctx.obj["config"]
    documents = _load_documents(document_file)
    parameters = _parse_parameters(params)
    partition_key = _parse_scalar(partition_value) if partition_value is not None else None

    async def run() -> List[Dict[str, Any]]:
        backend = StoreBackend(config.store)
        await backend.create_database_if_not_exists("cli")
        container = await backend.create_container_if_not_exists("cli", "documents", partition_key_path)
        for document in documents:
            await container.create_item(document)
        logger.info(f"Loaded {len(documents)} documents from {document_file}")

        results = container.query_items(
            query_text,
            parameters=parameters,
            partition_key=partition_key,
            enable_cross_partition_query=cross_partition or None,
        )
        return await results.to_list()

    current_activity = set_activity_id()
    logger.debug(f"Starting query activity {current_activity}")
    try:
        results = asyncio.run(run())
    except LocalCosmosError as e:
        raise click.ClickException(f"{e.error_code}: {e.message}")
    finally:
        clear_activity_id()

    for document in results:
        if not system_properties:
            document = strip_system_properties(document)
        click.echo(json.dumps(document, ensure_ascii=False))


def main():
    """Main entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
