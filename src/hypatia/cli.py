#!/usr/bin/env python3

import json
import sys
from typing import Any

import click
import uvicorn

from hypatia.config.settings import VERSION, get_config
from hypatia.core.normalizer import normalize_payload
from hypatia.core.type_resolver import resolve_type_token, resolve_variant
from hypatia.core.validator import validate_material
from hypatia.utils.error_handling import ValidationError


def _load_payload(path: str) -> Any:
    try:
        with open(path, "r") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        click.echo(f"Invalid JSON in {path}: {e}", err=True)
        sys.exit(2)


@click.group()
@click.version_option(version=VERSION)
def main():
    """Hypatia - learning material ingestion toolkit."""
    pass


@main.command("resolve")
@click.argument("payload_file", type=click.Path(exists=True, dir_okay=False))
def resolve(payload_file):
    """Print the material variant a payload resolves to."""
    payload = _load_payload(payload_file)
    click.echo(f"Token: {resolve_type_token(payload)}")
    click.echo(f"Variant: {resolve_variant(payload).value}")


@main.command("normalize")
@click.argument("payload_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--strict-related", is_flag=True, help="Reject unparseable related ids")
def normalize(payload_file, strict_related):
    """Print the normalized form of a payload as JSON."""
    payload = _load_payload(payload_file)
    try:
        normalized = normalize_payload(resolve_variant(payload), payload, strict_related=strict_related)
    except ValidationError as e:
        click.echo(f"Normalization failed: {e.message}", err=True)
        sys.exit(1)

    output = {
        "variant": normalized.variant.value,
        "material": normalized.material.model_dump(mode="json", exclude_none=True),
        "material_related": normalized.material_related,
        "related_by_item": {
            ".".join(str(part) for part in path): ids
            for path, ids in normalized.related_by_item.items()
        },
    }
    click.echo(json.dumps(output, indent=2))


@main.command("validate")
@click.argument("payload_file", type=click.Path(exists=True, dir_okay=False))
def validate(payload_file):
    """Check a payload against the structural rules of its variant."""
    payload = _load_payload(payload_file)
    try:
        normalized = normalize_payload(resolve_variant(payload), payload)
        validate_material(normalized)
    except ValidationError as e:
        click.echo(f"Invalid: {e.message}")
        for field, problem in e.details.get("field_errors", {}).items():
            click.echo(f"  {field}: {problem}")
        sys.exit(1)

    click.echo(f"Valid {normalized.variant.value} material '{normalized.material.name}' "
               f"with {len(normalized.sub_entities)} sub-entities")


@main.command("serve")
@click.option("--host", default=None, help="Bind address (defaults to api.host)")
@click.option("--port", default=None, type=int, help="Port (defaults to api.port)")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host, port, reload):
    """Run the HTTP API with uvicorn."""
    config = get_config()
    uvicorn.run(
        "hypatia.main:app",
        host=host or config.api.host,
        port=port or config.api.port,
        reload=reload,
    )


if __name__ == "__main__":
    main()
