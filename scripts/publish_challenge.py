#!/usr/bin/env python

"""Publish a challenge definition and its check units for local development.

Reads a challenge directory laid out as::

    <challenge_dir>/challenge.json   # id, version, passing_score, criteria (without hashes)
    <challenge_dir>/units/*.py|*.json

uploads every check unit to the object store, records each unit's SHA-256 in
the definition and publishes the definition to the registry database.

Usage:
    uv run python scripts/publish_challenge.py challenges/resilient-web-tier --bucket challenges
    uv run python scripts/publish_challenge.py --tenant team-042:000000000000:team-042-stack
"""

import hashlib
import json
import logging
from pathlib import Path
from typing import Annotated

import boto3
import typer
from botocore.exceptions import ClientError
from pydantic import ValidationError

from assessor.config import AWSConfig, DatabaseSettings
from assessor.models.domain import ChallengeDefinition, TenantAccount
from assessor.repositories.engine import create_db_engine, init_schema
from assessor.repositories.repository import Repository

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = typer.Typer(help="Publish challenges and tenants for local development")


def build_definition(challenge_dir: Path, bucket: str) -> tuple[ChallengeDefinition, dict[str, bytes]]:
    """Read a challenge directory and fingerprint its units."""
    document = json.loads((challenge_dir / "challenge.json").read_text())
    prefix = f"{document['id']}/v{document.get('version', 1)}/units"

    units: dict[str, bytes] = {}
    for criterion in document["criteria"]:
        ref = criterion["check_unit_ref"]
        content = (challenge_dir / "units" / ref).read_bytes()
        criterion["check_unit_sha256"] = hashlib.sha256(content).hexdigest()
        units[ref] = content

    document["check_units_location"] = f"store://{bucket}/{prefix}"
    return ChallengeDefinition.model_validate(document), units


@app.command()
def publish(
    challenge_dir: Annotated[Path | None, typer.Argument(help="Challenge directory", exists=True)] = None,
    bucket: Annotated[str, typer.Option("--bucket", help="Bucket holding check units")] = "challenges",
    tenant: Annotated[
        list[str] | None,
        typer.Option("--tenant", help="participant:account_id:stack_name to register"),
    ] = None,
):
    """Publish a challenge and/or register tenant accounts."""
    aws_config = AWSConfig()
    engine = create_db_engine(DatabaseSettings(), aws_config, use_null_pool=True)
    init_schema(engine)
    repository = Repository(engine)

    for entry in tenant or []:
        participant_id, account_id, stack_name = entry.split(":", 2)
        repository.put_tenant_account(
            TenantAccount(
                participant_id=participant_id,
                account_id=account_id,
                region=aws_config.region,
                stack_name=stack_name,
            )
        )
        logger.info(f"Registered tenant {participant_id} -> {account_id}/{stack_name}")

    if challenge_dir is None:
        return

    try:
        definition, units = build_definition(challenge_dir, bucket)
    except (KeyError, ValidationError, FileNotFoundError) as e:
        logger.error(f"Invalid challenge directory: {e}")
        raise typer.Exit(1) from e

    client_kwargs: dict = {"region_name": aws_config.region}
    if aws_config.endpoint_url:
        client_kwargs["endpoint_url"] = aws_config.endpoint_url
    s3_client = boto3.client("s3", **client_kwargs)

    _, _, prefix = definition.check_units_location.removeprefix("store://").partition("/")
    try:
        for ref, content in units.items():
            s3_client.put_object(Bucket=bucket, Key=f"{prefix}/{ref}", Body=content)
            logger.info(f"Uploaded {ref} ({len(content)} bytes)")
    except ClientError as e:
        logger.error(f"Failed to upload check units: {e}")
        raise typer.Exit(1) from e

    try:
        repository.put_challenge_definition(definition)
    except ValueError as e:
        logger.error(str(e))
        raise typer.Exit(1) from e
    logger.info(f"Published {definition.id} v{definition.version} with {len(units)} criteria")


if __name__ == "__main__":
    app()
