#!/usr/bin/env python3
"""
CLI tool for the BingoCloud provider
Plans, applies and inspects BingoCloud instances from desired-state files
"""

import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

import click
import yaml
from tabulate import tabulate

from config import load_config
from documents import ResourceDocument, load_documents
from engine import Engine
from errors import ProviderError
from provider import Provider
from statefile import StateStore
from validation import SENSITIVE_ATTRIBUTES

logger = logging.getLogger(__name__)

MASK = "(sensitive)"


def mask_sensitive(attributes: Dict[str, Any]) -> Dict[str, Any]:
    """Hide sensitive attribute values for display."""
    masked = dict(attributes)
    for attr in SENSITIVE_ATTRIBUTES:
        if masked.get(attr) is not None:
            masked[attr] = MASK
    return masked


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def _load_documents(filename: str) -> List[ResourceDocument]:
    try:
        return load_documents(filename)
    except (ProviderError, ValueError, yaml.YAMLError) as e:
        _fail(str(e))


class BingoCloudCLI:
    """Wires the configuration, state store and engine for one command."""

    def __init__(self, state_file: Optional[str] = None):
        self.config = load_config()
        logging.basicConfig(
            level=getattr(logging, self.config.log_level.upper(), logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
        # SDK wire logging is too chatty at DEBUG
        logging.getLogger("botocore").setLevel(logging.INFO)
        logging.getLogger("urllib3").setLevel(logging.INFO)
        self.store = StateStore(state_file or self.config.engine.state_file)
        self._engine = None

    @property
    def engine(self) -> Engine:
        """Engine with a configured provider, built on first use."""
        if self._engine is None:
            provider = Provider(self.config)
            provider.configure()
            self._engine = Engine(provider, self.store, self.config.engine)
        return self._engine

    def run(self, coro_factory):
        """Run an engine coroutine, reporting provider errors."""
        try:
            return asyncio.run(coro_factory(self.engine))
        except (ProviderError, ValueError) as e:
            _fail(str(e))


@click.group()
@click.option(
    "--state",
    "state_file",
    default=None,
    help="State file path (default: BINGOCLOUD_STATE_FILE)",
)
@click.pass_context
def cli(ctx, state_file):
    """BingoCloud CLI - declarative management of BingoCloud instances"""
    ctx.obj = BingoCloudCLI(state_file)


@cli.command()
@click.argument("filename", type=click.Path(exists=True))
@click.pass_obj
def plan(client, filename):
    """Show what apply would change"""
    documents = _load_documents(filename)
    plans = client.run(lambda engine: engine.plan(documents))

    rows = []
    for address, resource_plan in plans.items():
        changes = ", ".join(resource_plan.changed_attributes) or "-"
        rows.append([address, resource_plan.action.value, changes])
    headers = ["Address", "Action", "Changes"]
    click.echo(tabulate(rows, headers=headers, tablefmt="grid"))


@cli.command()
@click.argument("filename", type=click.Path(exists=True))
@click.pass_obj
def apply(client, filename):
    """Apply resources from a YAML/JSON file"""
    documents = _load_documents(filename)
    results = client.run(lambda engine: engine.apply(documents))

    rows = []
    for result in results:
        rows.append(
            [
                result.address,
                result.action.value,
                "✓" if result.success else "✗",
                result.state.id if result.state else "",
                result.error_message or "",
            ]
        )
    click.echo(
        tabulate(
            rows,
            headers=["Address", "Action", "Success", "ID", "Message"],
            tablefmt="grid",
        )
    )

    if not all(result.success for result in results):
        sys.exit(1)


@cli.command()
@click.argument("address", required=False)
@click.pass_obj
def refresh(client, address):
    """Refresh tracked state from the remote API"""
    if address:
        state = client.run(lambda engine: engine.refresh(address))
        states = {address: state}
    else:
        states = client.run(lambda engine: engine.refresh_all())

    for addr, state in states.items():
        if state is None:
            click.echo(f"{addr}: gone, removed from state")
        else:
            click.echo(f"{addr}: {state.id} ({state.state})")


@cli.command()
@click.argument("address", required=False)
@click.option(
    "--output", "-o", type=click.Choice(["table", "json", "yaml"]), default="table"
)
@click.pass_obj
def show(client, address, output):
    """Show tracked resources"""
    addresses = [address] if address else client.store.addresses()

    tracked = {}
    for addr in addresses:
        entry = client.store.get(addr)
        if entry is None:
            _fail(f"{addr} is not tracked")
        resource_type, state = entry
        tracked[addr] = {
            "type": resource_type,
            "attributes": mask_sensitive(state.to_dict()),
        }

    if output == "json":
        click.echo(json.dumps(tracked, indent=2))
    elif output == "yaml":
        click.echo(yaml.dump(tracked, default_flow_style=False))
    elif address:
        attributes = tracked[address]["attributes"]
        rows = [[key, value] for key, value in attributes.items()]
        click.echo(tabulate(rows, headers=["Attribute", "Value"], tablefmt="grid"))
    else:
        headers = ["Address", "ID", "State", "Type", "Private IP", "Public IP", "Zone"]
        rows = []
        for addr, entry in tracked.items():
            attrs = entry["attributes"]
            rows.append(
                [
                    addr,
                    attrs.get("id"),
                    attrs.get("state"),
                    attrs.get("instance_type"),
                    attrs.get("private_ip") or "",
                    attrs.get("public_ip") or "",
                    attrs.get("availability_zone") or "",
                ]
            )
        click.echo(tabulate(rows, headers=headers, tablefmt="grid"))


@cli.command()
@click.argument("address")
@click.confirmation_option(prompt="Are you sure you want to destroy this resource?")
@click.pass_obj
def destroy(client, address):
    """Terminate a tracked resource"""
    client.run(lambda engine: engine.destroy(address))
    click.echo(f"{address} destroyed")


@cli.command(name="import")
@click.argument("address")
@click.argument("instance_id")
@click.pass_obj
def import_(client, address, instance_id):
    """Track an existing instance under ADDRESS"""
    state = client.run(lambda engine: engine.import_resource(address, instance_id))
    click.echo(f"Imported {instance_id} as {address}")
    click.echo(f"State: {state.state}")


if __name__ == "__main__":
    cli()
